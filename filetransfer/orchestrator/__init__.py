"""Orchestrator package - drives batch uploads."""
from .core import OrchestratorState, UploadOrchestrator
from .process import ProcessState, UploadProcess

__all__ = ["UploadOrchestrator", "OrchestratorState", "UploadProcess", "ProcessState"]
