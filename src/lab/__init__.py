"""
Lab lifecycle operations: create, apply, show and destroy.
"""

from .environment import LabEnvironment, SystemProbe
from .impairment import ImpairmentApplier
from .inspector import LabInspector
from .provisioner import LabProvisioner
from .reconciler import LabReconciler

__all__ = [
    'LabEnvironment',
    'SystemProbe',
    'LabProvisioner',
    'ImpairmentApplier',
    'LabInspector',
    'LabReconciler',
]
