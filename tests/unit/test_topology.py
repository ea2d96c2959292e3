"""Tests for the in-memory topology."""

import pytest
from pydantic import SecretStr

from strata.connection import MASK, ConnectionUrl
from strata.errors import AuthorizationError, ConfigurationError, TopologyError
from strata.topology import Ref, Topology


class TestRef:
    """Tests for Ref tokens."""

    def test_token(self):
        """Test the token form."""
        ref = Ref("DataLayer/Redis", "PrimaryEndPoint.Address")

        assert ref.token == "${DataLayer/Redis.PrimaryEndPoint.Address}"
        assert str(ref) == ref.token


class TestDeclare:
    """Tests for declaring resources."""

    def test_logical_id(self):
        """Test logical ids are scoped by layer."""
        topology = Topology()
        vpc = topology.declare("NetworkLayer", "Vpc", "ec2.Vpc", cidr="10.0.0.0/21")

        assert vpc.logical_id == "NetworkLayer/Vpc"
        assert vpc.properties == {"cidr": "10.0.0.0/21"}
        assert "NetworkLayer/Vpc" in topology
        assert len(topology) == 1

    def test_duplicate_id(self):
        """Test the same id cannot be declared twice."""
        topology = Topology()
        topology.declare("NetworkLayer", "Vpc", "ec2.Vpc")

        with pytest.raises(ConfigurationError, match="Duplicate resource id"):
            topology.declare("NetworkLayer", "Vpc", "ec2.Vpc")

    def test_same_name_in_different_layers(self):
        """Test names are only unique within a layer."""
        topology = Topology()
        topology.declare("DataLayer", "SecurityGroup", "ec2.SecurityGroup")
        topology.declare("ServiceLayer", "SecurityGroup", "ec2.SecurityGroup")

        assert len(topology.of_kind("ec2.SecurityGroup")) == 2

    def test_require_unknown(self):
        """Test looking up an unknown id."""
        with pytest.raises(TopologyError, match="Unknown resource"):
            Topology().require("NetworkLayer/Vpc")


class TestLayers:
    """Tests for layer bookkeeping."""

    def test_layer_order_enforced(self):
        """Test a layer cannot be recorded before its dependencies."""
        topology = Topology()

        with pytest.raises(TopologyError, match="before NetworkLayer"):
            topology.begin_layer("DataLayer", ("NetworkLayer",))

    def test_layer_recorded_once(self):
        """Test a layer cannot be constructed twice."""
        topology = Topology()
        topology.begin_layer("NetworkLayer")

        with pytest.raises(TopologyError, match="twice"):
            topology.begin_layer("NetworkLayer")

    def test_layers(self):
        """Test recorded layers keep their dependencies."""
        topology = Topology()
        topology.begin_layer("NetworkLayer")
        topology.begin_layer("DataLayer", ("NetworkLayer",))

        assert [layer.name for layer in topology.layers] == ["NetworkLayer", "DataLayer"]
        assert topology.layers[1].depends_on == ("NetworkLayer",)


class TestGrant:
    """Tests for grants."""

    def test_grant_before_principal_exists(self):
        """Test granting to a principal that has not been constructed."""
        topology = Topology()
        db = topology.declare("DataLayer", "DBCluster", "rds.DatabaseCluster")

        with pytest.raises(AuthorizationError, match="principal 'ServiceLayer/FargateService'"):
            topology.grant(
                "ServiceLayer",
                "DatabaseAccessGrant",
                principal="ServiceLayer/FargateService",
                target=db.logical_id,
                action="connect",
            )
        assert "ServiceLayer/DatabaseAccessGrant" not in topology

    def test_grant_before_target_exists(self):
        """Test granting on a target that has not been constructed."""
        topology = Topology()
        role = topology.declare("ServiceLayer", "ExecutionRole", "iam.Role")

        with pytest.raises(AuthorizationError, match="target 'ServiceLayer/Repo'"):
            topology.grant(
                "ServiceLayer",
                "RepositoryPullGrant",
                principal=role.logical_id,
                target="ServiceLayer/Repo",
                action="ecr:pull",
            )

    def test_grant_after_both_exist(self):
        """Test a grant is ordered after both ends."""
        topology = Topology()
        db = topology.declare("DataLayer", "DBCluster", "rds.DatabaseCluster")
        service = topology.declare("ServiceLayer", "FargateService", "ecs.FargateService")

        grant = topology.grant(
            "ServiceLayer",
            "DatabaseAccessGrant",
            principal=service.logical_id,
            target=db.logical_id,
            action="connect",
            port=5432,
        )

        assert grant.kind == "iam.Grant"
        assert grant.properties["port"] == 5432
        assert set(topology.dependencies_of(grant.logical_id)) == {
            db.logical_id,
            service.logical_id,
        }
        assert topology.ordered()[-1] is grant


class TestValidation:
    """Tests for validation and ordering."""

    def test_dangling_reference(self):
        """Test a reference to an undeclared resource."""
        topology = Topology()
        topology.declare("NetworkLayer", "ECSCluster", "ecs.Cluster", vpc_id=Ref("NetworkLayer/Vpc", "VpcId"))

        with pytest.raises(TopologyError, match="undeclared 'NetworkLayer/Vpc'"):
            topology.validate()

    def test_edge_to_unknown_resource(self):
        """Test edges must connect declared resources."""
        topology = Topology()
        topology.declare("DataLayer", "Redis", "elasticache.ReplicationGroup")

        with pytest.raises(TopologyError):
            topology.depends_on("DataLayer/Redis", "DataLayer/SubnetGroup")

    def test_cycle(self):
        """Test cyclic edges are rejected."""
        topology = Topology()
        a = topology.declare("L", "A", "x")
        b = topology.declare("L", "B", "x")
        topology.depends_on(a.logical_id, b.logical_id)
        topology.depends_on(b.logical_id, a.logical_id)

        with pytest.raises(TopologyError, match="cycle"):
            topology.validate()

    def test_explicit_edge_overrides_declaration_order(self):
        """Test an explicit edge moves a dependency first."""
        topology = Topology()
        redis = topology.declare("DataLayer", "Redis", "elasticache.ReplicationGroup")
        group = topology.declare("DataLayer", "SubnetGroup", "elasticache.SubnetGroup")
        topology.depends_on(redis.logical_id, group.logical_id)

        assert [r.logical_id for r in topology.ordered()] == [
            "DataLayer/SubnetGroup",
            "DataLayer/Redis",
        ]

    def test_references_are_implicit_edges(self):
        """Test a property reference orders its target first."""
        topology = Topology()
        cluster = topology.declare(
            "NetworkLayer", "ECSCluster", "ecs.Cluster", vpc_id=Ref("NetworkLayer/Vpc", "VpcId")
        )
        vpc = topology.declare("NetworkLayer", "Vpc", "ec2.Vpc")

        assert topology.ordered() == [vpc, cluster]

    def test_stable_order(self):
        """Test independent resources keep declaration order."""
        topology = Topology()
        names = ["C", "A", "B"]
        for name in names:
            topology.declare("L", name, "x")

        assert [r.logical_id for r in topology.ordered()] == ["L/C", "L/A", "L/B"]


class TestSerialization:
    """Tests for to_dict."""

    def _topology(self) -> Topology:
        topology = Topology()
        topology.begin_layer("DataLayer")
        cluster = topology.declare(
            "DataLayer", "DBCluster", "rds.DatabaseCluster", master_password=SecretStr("hunter22")
        )
        topology.declare(
            "DataLayer",
            "Consumer",
            "x",
            url=ConnectionUrl(
                scheme="postgres",
                user="root",
                password=SecretStr("hunter22"),
                host=cluster.ref("Endpoint.Address").token,
                port=5432,
                database="app_db",
            ),
        )
        return topology

    def test_secrets_masked(self):
        """Test secrets are masked by default."""
        data = self._topology().to_dict()
        resources = {r["logical_id"]: r for r in data["resources"]}

        assert resources["DataLayer/DBCluster"]["properties"]["master_password"] == MASK
        assert "hunter22" not in str(data)
        assert resources["DataLayer/Consumer"]["properties"]["url"] == (
            f"postgres://root:{MASK}@${{DataLayer/DBCluster.Endpoint.Address}}:5432/app_db"
        )

    def test_secrets_revealed(self):
        """Test secrets can be revealed explicitly."""
        data = self._topology().to_dict(reveal_secrets=True)

        assert "hunter22" in str(data)
        assert data["layers"] == [{"name": "DataLayer", "depends_on": []}]
