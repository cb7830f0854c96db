"""User identity and mapping models."""

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from .team import TeamMember


MAPPING_FIELDS = ['ADO_UPN', 'ADO_Username', 'GitHub_Username', 'GitHub_Email']
SAML_FIELD = 'SAML_Identity'


class TargetUser(BaseModel):
    """Member of the target organization."""

    id: Optional[str] = Field(default=None, description='Node ID')
    login: str = Field(..., description='Login')
    name: Optional[str] = Field(default=None, description='Display name')
    email: Optional[str] = Field(default=None, description='Public email')
    role: Optional[str] = Field(default=None, description='Organization role')


class SamlIdentity(BaseModel):
    """SSO identity linked to a target organization member."""

    login: str = Field(..., description='Target login')
    name: Optional[str] = Field(default=None, description='Display name')
    email: Optional[str] = Field(default=None, description='Email')
    name_id: str = Field(..., description='SAML NameID')


class MappingEntry(BaseModel):
    """One row of the identity mapping file."""

    source_upn: str = Field(..., description='Source unique name')
    source_username: str = Field(default='', description='Source display name')
    target_username: str = Field(default='', description='Target login')
    target_email: str = Field(default='', description='Target email')
    saml_identity: str = Field(default='', description='SAML NameID')


class IdentityMapping:
    """Read-only lookup from source unique name to target username.

    Keys are compared case-insensitively. Rows without a target username
    count as unmapped.
    """

    def __init__(self, entries: Optional[Iterable[MappingEntry]] = None):
        self._entries: Dict[str, MappingEntry] = {}
        for entry in entries or []:
            self._entries[entry.source_upn.strip().lower()] = entry

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> 'IdentityMapping':
        """Load mapping from a CSV file.

        Args:
            path: Mapping file path

        Returns:
            Loaded mapping
        """
        entries = []
        with open(path, 'r', encoding='utf-8-sig', newline='') as f:
            for row in csv.DictReader(f):
                upn = (row.get('ADO_UPN') or '').strip()
                if not upn:
                    continue
                entries.append(
                    MappingEntry(
                        source_upn=upn,
                        source_username=(row.get('ADO_Username') or '').strip(),
                        target_username=(row.get('GitHub_Username') or '').strip(),
                        target_email=(row.get('GitHub_Email') or '').strip(),
                        saml_identity=(row.get(SAML_FIELD) or '').strip(),
                    )
                )
        return cls(entries)

    def lookup(self, unique_name: str) -> Optional[str]:
        """Return the target username for a source unique name, if mapped."""
        entry = self._entries.get((unique_name or '').strip().lower())
        if entry is None or not entry.target_username:
            return None
        return entry.target_username

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, unique_name: str) -> bool:
        return self.lookup(unique_name) is not None


def build_user_mapping(
    source_users: Iterable[TeamMember],
    org_members: Iterable[TargetUser],
    saml_identities: Iterable[SamlIdentity] = (),
) -> List[MappingEntry]:
    """Match source identities to target organization members.

    A source user matches a member whose public email equals its unique
    name, or whose linked SAML NameID does.

    Args:
        source_users: Distinct source users (groups are ignored)
        org_members: Target organization members
        saml_identities: SAML identities of the target organization

    Returns:
        One mapping entry per source user, unmatched users included
    """
    members = list(org_members)
    saml_by_login = {identity.login.lower(): identity for identity in saml_identities}
    entries = []

    for user in source_users:
        if user.is_group:
            continue
        upn = user.unique_name
        match = None
        for member in members:
            if member.email and member.email.lower() == upn.lower():
                match = member
                break
            saml = saml_by_login.get(member.login.lower())
            if saml and saml.name_id.lower() == upn.lower():
                match = member
                break

        saml_id = ''
        if match is not None and match.login.lower() in saml_by_login:
            saml_id = saml_by_login[match.login.lower()].name_id

        entries.append(
            MappingEntry(
                source_upn=upn,
                source_username=user.display_name,
                target_username=match.login if match else '',
                target_email=(match.email or '') if match else '',
                saml_identity=saml_id,
            )
        )
    return entries


def write_mapping_csv(
    path: Union[str, Path], entries: Iterable[MappingEntry], include_saml: bool
) -> Path:
    """Write mapping entries in the format read by :meth:`IdentityMapping.from_csv`."""
    path = Path(path)
    fields = MAPPING_FIELDS + ([SAML_FIELD] if include_saml else [])
    with open(path, 'w', encoding='utf-8', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(fields)
        for entry in entries:
            row = [
                entry.source_upn,
                entry.source_username,
                entry.target_username,
                entry.target_email,
            ]
            if include_saml:
                row.append(entry.saml_identity)
            writer.writerow(row)
    return path
