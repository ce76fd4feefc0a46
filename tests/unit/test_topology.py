"""Unit tests for multiroom role derivation."""

from __future__ import annotations

from linkhub.multiroom.topology import derive_topology, normalize_uuid, parse_slave_list
from linkhub.state.models import GroupRole, parse_extended_status


class TestDeriveTopology:
    """Tests for derive_topology."""

    def test_own_uuid_as_host_is_master(self, extended_status_factory):
        """Test that uuid == host_uuid makes this device master with its slaves."""
        status = parse_extended_status(
            extended_status_factory(uuid="A", host_uuid="A", slave_list=[{"ip": "10.0.0.2"}]),
        )
        topology = derive_topology(status)
        assert topology.role == GroupRole.MASTER
        assert topology.master_address == ""
        assert topology.slave_addresses == ("10.0.0.2",)

    def test_other_host_is_slave(self, extended_status_factory):
        """Test that a different host uuid makes this device a slave of host_ip."""
        status = parse_extended_status(extended_status_factory(uuid="B", host_uuid="A", host_ip="10.0.0.1"))
        topology = derive_topology(status)
        assert topology.role == GroupRole.SLAVE
        assert topology.master_address == "10.0.0.1"
        assert topology.slave_addresses == ()

    def test_master_fields_used_as_fallback(self, extended_status_factory):
        """Test master_uuid/master_ip when host_* are absent."""
        status = parse_extended_status(extended_status_factory(uuid="B", master_uuid="A", master_ip="10.0.0.7"))
        topology = derive_topology(status)
        assert topology.role == GroupRole.SLAVE
        assert topology.master_address == "10.0.0.7"

    def test_empty_host_is_standalone(self, extended_status_factory):
        """Test that no host uuid means standalone."""
        topology = derive_topology(parse_extended_status(extended_status_factory()))
        assert topology.role == GroupRole.STANDALONE
        assert topology.master_address == ""
        assert topology.slave_addresses == ()

    def test_slave_without_address_is_standalone(self, extended_status_factory):
        """Test that a slave with no reported master address keeps the invariant."""
        status = parse_extended_status(extended_status_factory(uuid="B", host_uuid="A"))
        assert derive_topology(status).role == GroupRole.STANDALONE

    def test_configured_udn_identifies_master(self, extended_status_factory):
        """Test own_uuid when the payload carries no uuid."""
        status = parse_extended_status(
            extended_status_factory(uuid="", upnp_uuid="", host_uuid="aaaa-1111"),
        )
        assert derive_topology(status, own_uuid="uuid:AAAA-1111").role == GroupRole.MASTER


class TestHelpers:
    """Tests for uuid and slave-list helpers."""

    def test_normalize_uuid(self):
        """Test prefix and case handling."""
        assert normalize_uuid(" uuid:ABC-1 ") == "abc-1"

    def test_malformed_slave_entries_are_skipped(self):
        """Test that bad entries and duplicates are dropped."""
        entries = [{"ip": "10.0.0.2"}, {"name": "no ip"}, "junk", {"ip": "not-an-ip"}, {"ip": "10.0.0.2"}, {"ip": "10.0.0.3"}]
        assert parse_slave_list(entries) == ("10.0.0.2", "10.0.0.3")
