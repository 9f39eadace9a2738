"""Services for filetransfer module."""
from .resample import ImageResampleService

__all__ = ["ImageResampleService"]
