"""
Worker Module

Local translation worker process and the manager that caches it.
"""

from underlator.worker.manager import WorkerPipelineManager, get_worker_manager
from underlator.worker.process import WorkerHandle, run_worker, spawn_worker
from underlator.worker.resolver import ModelResolver

__all__ = [
    'ModelResolver',
    'WorkerHandle',
    'WorkerPipelineManager',
    'get_worker_manager',
    'run_worker',
    'spawn_worker',
]
