"""Azure DevOps to GitHub Migration Tool

Migrates Git and TFVC repositories, teams and team memberships from an
Azure DevOps organization to a GitHub organization, re-deriving what is
already migrated from live state on every run.
"""

__version__ = '0.1.0'
__author__ = 'ado2gh Migration Team'
__email__ = 'team@example.com'
