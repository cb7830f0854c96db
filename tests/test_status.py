"""Tests for migration status aggregation."""

import itertools

import pytest

from ado2gh.models.project import Project
from ado2gh.models.repository import Repository
from ado2gh.models.status import TERMINAL_STATUSES, MigrationStatus, aggregate_status
from ado2gh.models.team import Team

S = MigrationStatus


def expected_status(children):
    if not children:
        return S.SKIPPED
    all_done = all(child in TERMINAL_STATUSES for child in children)
    failed = S.FAILED in children
    if failed:
        return S.PARTIALLY_COMPLETED if all_done else S.FAILED
    if all_done:
        return S.COMPLETED if S.COMPLETED in children else S.SKIPPED
    return S.PARTIALLY_COMPLETED


class TestAggregateStatus:
    """Test the aggregate rule."""

    def test_no_children_is_skipped(self):
        assert aggregate_status([]) == S.SKIPPED

    @pytest.mark.parametrize(
        'children,expected',
        [
            ([S.COMPLETED, S.COMPLETED], S.COMPLETED),
            ([S.COMPLETED, S.SKIPPED], S.COMPLETED),
            ([S.SKIPPED, S.SKIPPED], S.SKIPPED),
            ([S.FAILED, S.PENDING], S.FAILED),
            ([S.FAILED], S.FAILED),
            ([S.COMPLETED, S.PENDING], S.PARTIALLY_COMPLETED),
            ([S.PARTIALLY_COMPLETED], S.PARTIALLY_COMPLETED),
            ([S.PENDING], S.PARTIALLY_COMPLETED),
        ],
    )
    def test_examples(self, children, expected):
        assert aggregate_status(children) == expected

    @pytest.mark.parametrize('size', [1, 2, 3])
    def test_every_combination(self, size):
        for children in itertools.product(list(S), repeat=size):
            assert aggregate_status(children) == expected_status(list(children))

    def test_accepts_generators(self):
        assert aggregate_status(s for s in [S.COMPLETED]) == S.COMPLETED


class TestProjectStatus:
    """Test project rollup over repositories and teams."""

    def test_recompute_status(self):
        project = Project(
            id='p1',
            name='Sales',
            repositories=[Repository(id='r1', name='web', status=S.COMPLETED)],
            teams=[Team(id='t1', name='Core', status=S.PENDING)],
        )

        assert project.recompute_status() == S.PARTIALLY_COMPLETED
        assert project.status == S.PARTIALLY_COMPLETED

    def test_empty_project_is_skipped(self):
        project = Project(id='p1', name='Empty')

        assert project.recompute_status() == S.SKIPPED
