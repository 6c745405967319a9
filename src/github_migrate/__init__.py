"""GitHub Migration Tool

Migrates Azure DevOps and Bitbucket Server repositories to GitHub through the
GitHub migration API, and generates scripts that migrate whole inventories
together with their teams, source lockdown and pipeline rewiring.
"""

__version__ = '0.1.0'

from .cli.main import main

__all__ = ['main']
