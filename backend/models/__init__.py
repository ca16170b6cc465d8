"""
Taskflow Models Package

Import all models here to ensure they are registered with SQLAlchemy's metadata.
"""

from .models import *

__all__ = ['Task', 'Submission', 'SubmissionFile', 'TaskComment']
