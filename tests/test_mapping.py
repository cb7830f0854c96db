"""Tests for identity mapping."""

from ado2gh.models.team import TeamMember
from ado2gh.models.user import (
    IdentityMapping,
    MappingEntry,
    SamlIdentity,
    TargetUser,
    build_user_mapping,
    write_mapping_csv,
)


class TestIdentityMapping:
    """Test mapping file lookup."""

    def test_from_csv(self, tmp_path):
        path = tmp_path / 'mapping.csv'
        path.write_text(
            '\ufeffADO_UPN,ADO_Username,GitHub_Username,GitHub_Email\n'
            'Alice@Co.com,Alice,alice,alice@co.com\n'
            'bob@co.com,Bob,,\n'
            ',Nobody,ghost,\n',
            encoding='utf-8',
        )

        mapping = IdentityMapping.from_csv(path)

        assert len(mapping) == 2
        assert mapping.lookup('alice@co.com') == 'alice'
        assert mapping.lookup('ALICE@CO.COM') == 'alice'
        assert mapping.lookup('bob@co.com') is None
        assert 'alice@co.com' in mapping
        assert 'carol@co.com' not in mapping

    def test_lookup_unknown(self):
        assert IdentityMapping().lookup('alice@co.com') is None


class TestBuildUserMapping:
    """Test matching source users to organization members."""

    def test_match_by_email_and_saml(self):
        users = [
            TeamMember(unique_name='alice@co.com', display_name='Alice'),
            TeamMember(unique_name='bob@co.com', display_name='Bob'),
            TeamMember(unique_name='carol@co.com', display_name='Carol'),
            TeamMember(unique_name='[Sales]\\Readers', is_group=True),
        ]
        members = [
            TargetUser(login='alice-gh', email='Alice@co.com'),
            TargetUser(login='bob-gh'),
        ]
        identities = [SamlIdentity(login='bob-gh', name_id='bob@co.com')]

        entries = build_user_mapping(users, members, identities)

        assert [e.source_upn for e in entries] == [
            'alice@co.com',
            'bob@co.com',
            'carol@co.com',
        ]
        assert entries[0].target_username == 'alice-gh'
        assert entries[1].target_username == 'bob-gh'
        assert entries[1].saml_identity == 'bob@co.com'
        assert entries[2].target_username == ''

    def test_written_file_reads_back(self, tmp_path):
        entries = [
            MappingEntry(
                source_upn='alice@co.com',
                source_username='Alice',
                target_username='alice-gh',
                saml_identity='alice@co.com',
            )
        ]
        path = write_mapping_csv(tmp_path / 'out.csv', entries, include_saml=True)

        header = path.read_text(encoding='utf-8').splitlines()[0]
        assert header.endswith('SAML_Identity')
        assert IdentityMapping.from_csv(path).lookup('alice@co.com') == 'alice-gh'
