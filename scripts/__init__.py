"""
Scripts for MedAdhere
Utility scripts for development seeding
"""

from .seed_data import seed_all, create_tables

__all__ = [
    "seed_all",
    "create_tables"
]
