"""Addressing of replicated database instances."""

RAFT_PORT = "7000"

SERVER_ID_PREFIX = "habitat_server"
LOCAL_SERVER_NUMBER = 1


def get_server_id(community_id: str) -> str:
    """The id this node uses to identify itself within a cluster.

    Every database hosted on this node shares the same server id, whatever
    the community it belongs to.
    """
    return f"{SERVER_ID_PREFIX}_{LOCAL_SERVER_NUMBER}"


def get_database_address(database_id: str) -> str:
    """The address of the replicated instance for one database."""
    return f"http://localhost:{RAFT_PORT}/{database_id}"