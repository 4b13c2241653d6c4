"""Compose engine: project model, planning, reconciliation and lifecycle."""

from .builder import Builder, CommandBuilder
from .images import ImageResolution, ImageResolver
from .lifecycle import InstanceStatus, LifecycleDriver, LifecycleResult
from .naming import instance_name, network_name, resource_name, service_instance_names, volume_name
from .planner import ServiceGroupPlan, ServiceGroupPlanner, plan_service_groups
from .project import (
    BuildContext,
    Network,
    PortMapping,
    Project,
    Service,
    Volume,
    VolumeMount,
    load_project,
)
from .reconciler import Reconciler, ReconcileResult
from .refresher import FleetRefresher, RefreshResult
from .status import ProjectStatus, ResourceMeta, StatusStore
from .volumes import VolumePlan, VolumeProvisioner, parse_size, plan_volumes

__all__ = [
    # Project model
    "BuildContext",
    "Network",
    "PortMapping",
    "Project",
    "Service",
    "Volume",
    "VolumeMount",
    "load_project",
    # Naming
    "instance_name",
    "network_name",
    "resource_name",
    "service_instance_names",
    "volume_name",
    # Planning and provisioning
    "ServiceGroupPlan",
    "ServiceGroupPlanner",
    "plan_service_groups",
    "VolumePlan",
    "VolumeProvisioner",
    "parse_size",
    "plan_volumes",
    # Images
    "Builder",
    "CommandBuilder",
    "ImageResolution",
    "ImageResolver",
    # Reconciliation
    "Reconciler",
    "ReconcileResult",
    "FleetRefresher",
    "RefreshResult",
    # Lifecycle
    "InstanceStatus",
    "LifecycleDriver",
    "LifecycleResult",
    # Status
    "ProjectStatus",
    "ResourceMeta",
    "StatusStore",
]
