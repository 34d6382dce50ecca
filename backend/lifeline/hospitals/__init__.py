"""
Hospital Registry Package
"""

from .hospital_directory import HospitalDirectory

__all__ = ["HospitalDirectory"]
