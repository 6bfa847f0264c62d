"""
Integration tests for the association resolver.

Tests cover:
- Idempotent N:N associations
- Singular role overwrite
- Edge order
- Dissociation variants and consistency failures
- Counter maintenance
- Input validation
"""

import pytest
import pytest_asyncio

from pyrope.core.associations import AssociationItem, AssociationResolver
from pyrope.errors import AdapterError, AssociationConsistencyError, ValidationError


@pytest_asyncio.fixture
async def memberships(store, tables):
    """Contact N:N Organization edges."""
    return AssociationResolver(store, "contacts_organizations", tables)


@pytest_asyncio.fixture
async def profiles(store, tables):
    """User 1:1 Contact edges."""
    return AssociationResolver(store, "contacts_users", tables)


def orgs(value, has_many=True):
    return AssociationItem({"organization": value}, has_many=has_many)


def contacts(value, has_many=True):
    return AssociationItem({"contact": value}, has_many=has_many)


def user(value):
    return AssociationItem({"user": value}, has_many=False)


def edges(store, resolver):
    return store.get_all_items(resolver.full_name)


class TestAssociate:
    """Tests for associate."""

    @pytest.mark.asyncio
    async def test_associate_is_idempotent(self, memberships, store):
        """Linking the same pair twice keeps a single edge."""
        assert await memberships.associate([orgs("O1"), contacts("C1")]) is True
        assert await memberships.associate([orgs("O1"), contacts("C1")]) is False

        assert len(edges(store, memberships)) == 1
        assert await memberships.actions.count() == 1

    @pytest.mark.asyncio
    async def test_edges_follow_write_order(self, memberships):
        """Edges come back in the order they were written."""
        await memberships.associate([orgs("O1"), contacts(["C1", "C2", "C3"])])

        assert await memberships.get_associations({"organization": "O1"}, "contact") == [
            "C1",
            "C2",
            "C3",
        ]

    @pytest.mark.asyncio
    async def test_cartesian_product(self, memberships, store):
        """Both write lists are crossed, first role outermost."""
        await memberships.associate([orgs(["O1", "O2"]), contacts(["C1", "C2"])])

        assert [(e["organization"], e["contact"]) for e in edges(store, memberships)] == [
            ("O1", "C1"),
            ("O1", "C2"),
            ("O2", "C1"),
            ("O2", "C2"),
        ]

    @pytest.mark.asyncio
    async def test_only_missing_edges_are_added(self, memberships, store):
        """Values already linked to every partner are skipped."""
        await memberships.associate([orgs("O1"), contacts("C1")])

        assert await memberships.associate([orgs("O1"), contacts(["C1", "C2"])]) is True

        assert [(e["organization"], e["contact"]) for e in edges(store, memberships)] == [
            ("O1", "C1"),
            ("O1", "C2"),
        ]

    @pytest.mark.asyncio
    async def test_singular_role_is_overwritten(self, profiles, store):
        """A singular role keeps only its newest edge."""
        await profiles.associate([user("U1"), contacts("C1", has_many=False)])

        assert await profiles.associate([user("U1"), contacts("C2", has_many=False)]) is True

        assert [(e["user"], e["contact"]) for e in edges(store, profiles)] == [("U1", "C2")]
        assert await profiles.actions.count() == 1

    @pytest.mark.asyncio
    async def test_relinking_singular_pair_rewrites_edge(self, profiles, store):
        """Re-associating a singular pair replaces the edge with a new one."""
        await profiles.associate([user("U1"), contacts("C1", has_many=False)])
        before = edges(store, profiles)[0]

        assert await profiles.associate([user("U1"), contacts("C1", has_many=False)]) is True

        after = edges(store, profiles)
        assert len(after) == 1
        assert after[0]["uuid"] != before["uuid"]

    @pytest.mark.asyncio
    async def test_destroy_without_write_returns_false(self, memberships, store):
        """A singular role can lose its edges while nothing new is written."""
        await memberships.associate([orgs("O1"), contacts("C1")])

        result = await memberships.associate([orgs("O1"), contacts("C1", has_many=False)])

        assert result is False
        assert edges(store, memberships) == []
        assert await memberships.actions.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_items(self, memberships, store):
        """Malformed calls fail before touching the store."""
        with pytest.raises(ValidationError):
            await memberships.associate([orgs("O1")])
        with pytest.raises(ValidationError, match="must differ"):
            await memberships.associate([orgs("O1"), orgs("O2")])
        with pytest.raises(ValidationError):
            await memberships.associate([orgs([]), contacts("C1")])
        with pytest.raises(ValidationError):
            await memberships.associate([orgs(None), contacts("C1")])
        with pytest.raises(ValidationError):
            await memberships.associate([{"organization": "O1"}, contacts("C1")])
        with pytest.raises(ValidationError):
            await memberships.associate(
                [AssociationItem({"organization": "O1", "contact": "C1"}), contacts("C1")]
            )

        assert edges(store, memberships) == []

    @pytest.mark.asyncio
    async def test_store_failure_is_prefixed(self, memberships, store):
        """Store errors name the association operation."""
        store.fail_next("query", "InternalServerError")

        with pytest.raises(AdapterError) as exc_info:
            await memberships.associate([orgs("O1"), contacts("C1")])

        assert str(exc_info.value) == (
            "associate() > find_by_index() > MemoryStore[query]: InternalServerError"
        )


class TestDissociate:
    """Tests for dissociate."""

    @pytest_asyncio.fixture
    async def linked(self, memberships):
        """O1 linked to C1, C2 and C3; O2 linked to C1."""
        await memberships.associate([orgs("O1"), contacts(["C1", "C2", "C3"])])
        await memberships.associate([orgs("O2"), contacts("C1")])
        return memberships

    @pytest.mark.asyncio
    async def test_dissociate_everything(self, linked, store):
        """None removes every edge of the first role."""
        assert await linked.dissociate([orgs("O1"), contacts(None)]) is True

        assert [(e["organization"], e["contact"]) for e in edges(store, linked)] == [("O2", "C1")]
        assert await linked.actions.count() == 1

    @pytest.mark.asyncio
    async def test_dissociate_scalar(self, linked):
        """A scalar removes one edge."""
        assert await linked.dissociate([orgs("O1"), contacts("C2")]) is True

        assert await linked.get_associations({"organization": "O1"}, "contact") == ["C1", "C3"]
        assert await linked.actions.count() == 3

    @pytest.mark.asyncio
    async def test_dissociate_list(self, linked):
        """A list removes each listed edge."""
        assert await linked.dissociate([orgs("O1"), contacts(["C1", "C3"])]) is True

        assert await linked.get_associations({"organization": "O1"}, "contact") == ["C2"]
        assert await linked.get_associations({"contact": "C1"}, "organization") == ["O2"]

    @pytest.mark.asyncio
    async def test_unlinked_value_removes_nothing(self, linked, store):
        """Any unlinked value fails the whole call."""
        before = edges(store, linked)

        with pytest.raises(AssociationConsistencyError) as exc_info:
            await linked.dissociate([orgs("O1"), contacts(["C1", "C9"])])

        assert exc_info.value.missing == ["C9"]
        assert exc_info.value.message.startswith("dissociate() > ")
        assert edges(store, linked) == before

    @pytest.mark.asyncio
    async def test_no_edges(self, linked):
        """A first role without edges returns False."""
        assert await linked.dissociate([orgs("O9"), contacts(None)]) is False
        assert await linked.dissociate([orgs("O9"), contacts("C1")]) is False

    @pytest.mark.asyncio
    async def test_first_role_must_be_scalar(self, linked):
        """Several first-role values are rejected."""
        with pytest.raises(ValidationError):
            await linked.dissociate([orgs(["O1", "O2"]), contacts(None)])
        with pytest.raises(ValidationError):
            await linked.dissociate([orgs(None), contacts("C1")])


class TestGetAssociations:
    """Tests for get_associations."""

    @pytest.mark.asyncio
    async def test_no_edges(self, memberships):
        """Unknown values have no associations."""
        assert await memberships.get_associations({"organization": "O1"}, "contact") == []

    @pytest.mark.asyncio
    async def test_attribute_required(self, memberships):
        """The attribute to read must be named."""
        with pytest.raises(ValidationError):
            await memberships.get_associations({"organization": "O1"}, "")


class TestRepeatedValues:
    """Tests for values repeated within one role."""

    @pytest.mark.asyncio
    async def test_repeated_value_on_singular_roles(self, profiles, store):
        """A repeated value on a singular role yields one edge."""
        assert await profiles.associate(
            [user("U1"), contacts(["C1", "C1"], has_many=False)]
        ) is True

        assert [(e["user"], e["contact"]) for e in edges(store, profiles)] == [("U1", "C1")]
        assert await profiles.actions.count() == 1

    @pytest.mark.asyncio
    async def test_repeated_value_on_plural_roles(self, memberships, store):
        """Repeated values on plural roles keep first-seen order, once each."""
        await memberships.associate([orgs(["O1", "O1"]), contacts(["C2", "C1", "C2"])])

        assert [(e["organization"], e["contact"]) for e in edges(store, memberships)] == [
            ("O1", "C2"),
            ("O1", "C1"),
        ]
        assert await memberships.actions.count() == 2

    @pytest.mark.asyncio
    async def test_repeated_values_to_dissociate(self, memberships):
        """Repeated values are removed once."""
        await memberships.associate([orgs("O1"), contacts(["C1", "C2"])])

        assert await memberships.dissociate([orgs("O1"), contacts(["C1", "C1"])]) is True

        assert await memberships.get_associations({"organization": "O1"}, "contact") == ["C2"]


class TestEdgeOrdering:
    """Tests for the creation order of edges."""

    @pytest.mark.asyncio
    async def test_edges_have_increasing_created_at(self, memberships, store):
        """Edges of one call get distinct, increasing range keys."""
        await memberships.associate([orgs(["O1", "O2"]), contacts(["C3", "C1", "C2"])])

        created = [e["createdAt"] for e in edges(store, memberships)]

        assert len(created) == 6
        assert created == sorted(created)
        assert len(set(created)) == len(created)
        assert await memberships.get_associations({"organization": "O2"}, "contact") == [
            "C3",
            "C1",
            "C2",
        ]
