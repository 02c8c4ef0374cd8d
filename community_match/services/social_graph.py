"""Social proximity signals derived from accepted connections, communities and events.

Only ``accepted`` connections become edges. All traversals are bounded so a
request always finishes over finite in-memory collections.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, Union

import networkx as nx

from community_match.config import DEFAULT_MATCHING_CONFIG, TRUST_PATH_MAX_HOPS
from community_match.models import Community, Connection, Event
from community_match.services.scoring import as_utc, days_between

logger = logging.getLogger(__name__)

ConnectionsLike = Union[nx.Graph, Iterable[Connection]]


def build_connection_graph(connections: Iterable[Connection]) -> nx.Graph:
    G = nx.Graph()
    for conn in connections:
        if conn.status != "accepted" or conn.user1_id == conn.user2_id:
            continue
        created = as_utc(conn.created_at)
        if G.has_edge(conn.user1_id, conn.user2_id):
            # Keep the longest-standing link between a pair.
            if created < G[conn.user1_id][conn.user2_id]["created_at"]:
                G[conn.user1_id][conn.user2_id]["created_at"] = created
            continue
        G.add_edge(conn.user1_id, conn.user2_id, created_at=created, connection_id=conn.id)
    return G


def _as_graph(connections: ConnectionsLike) -> nx.Graph:
    if isinstance(connections, nx.Graph):
        return connections
    return build_connection_graph(connections)


def _neighbors(G: nx.Graph, user_id: str) -> set[str]:
    if user_id not in G:
        return set()
    return set(G.neighbors(user_id))


class SocialGraphEngine:
    def __init__(self, cfg: dict[str, Any] | None = None, max_hops: int = TRUST_PATH_MAX_HOPS):
        self.cfg = cfg or DEFAULT_MATCHING_CONFIG
        self.max_hops = max_hops

    # -- bonus components ------------------------------------------------------

    def social_bonus(
        self,
        requester_id: str,
        candidate_id: str,
        connections: ConnectionsLike = (),
        communities: Sequence[Community] = (),
        events: Sequence[Event] = (),
        now: datetime | None = None,
    ) -> float:
        """Sum of the four capped proximity components, capped at 50."""
        G = _as_graph(connections)
        total = (
            self.mutual_bonus(requester_id, candidate_id, G)
            + self.community_bonus(requester_id, candidate_id, communities)
            + self.event_bonus(requester_id, candidate_id, events, now=now)
            + self.density_bonus(requester_id, candidate_id, G)
        )
        return min(float(self.cfg["SOCIAL_BONUS_CAP"]), total)

    def mutual_bonus(self, requester_id: str, candidate_id: str, connections: ConnectionsLike) -> float:
        mutual = self.mutual_connections(requester_id, candidate_id, connections)
        return min(float(self.cfg["MUTUAL_CAP"]), len(mutual) * float(self.cfg["MUTUAL_POINTS"]))

    def community_bonus(self, requester_id: str, candidate_id: str, communities: Sequence[Community]) -> float:
        shared = [c for c in communities if requester_id in c.members and candidate_id in c.members]
        if not shared:
            return 0.0

        bonus = len(shared) * float(self.cfg["COMMUNITY_POINTS"])
        small = int(self.cfg["SMALL_COMMUNITY_SIZE"])
        bonus += sum(float(self.cfg["SMALL_COMMUNITY_POINTS"]) for c in shared if len(c.members) <= small)
        if any(c.affiliation for c in shared):
            bonus += float(self.cfg["AFFILIATION_POINTS"])
        return min(float(self.cfg["COMMUNITY_CAP"]), bonus)

    def event_bonus(
        self,
        requester_id: str,
        candidate_id: str,
        events: Sequence[Event],
        now: datetime | None = None,
    ) -> float:
        shared = [e for e in events if requester_id in e.attendees and candidate_id in e.attendees]
        if not shared:
            return 0.0

        now = now or datetime.now(timezone.utc)
        cutoff = as_utc(now) - timedelta(days=int(self.cfg["RECENT_EVENT_DAYS"]))
        recent = [e for e in shared if as_utc(e.start) >= cutoff]
        bonus = len(shared) * float(self.cfg["EVENT_POINTS"]) + len(recent) * float(self.cfg["RECENT_EVENT_POINTS"])
        return min(float(self.cfg["EVENT_CAP"]), bonus)

    def density_bonus(self, requester_id: str, candidate_id: str, connections: ConnectionsLike) -> float:
        G = _as_graph(connections)
        union = _neighbors(G, requester_id) | _neighbors(G, candidate_id)
        # Mutuals beyond the mutual cap are left out of the density neighbourhood.
        points = float(self.cfg["MUTUAL_POINTS"])
        counted = math.ceil(float(self.cfg["MUTUAL_CAP"]) / points) if points > 0 else 0
        union -= set(self.mutual_connections(requester_id, candidate_id, G)[counted:])
        if len(union) < 2:
            return 0.0
        density = nx.density(G.subgraph(union))
        return min(float(self.cfg["DENSITY_CAP"]), density * float(self.cfg["DENSITY_MULTIPLIER"]))

    # -- lookups ---------------------------------------------------------------

    def connections_of(self, user_id: str, connections: ConnectionsLike) -> list[str]:
        return sorted(_neighbors(_as_graph(connections), user_id))

    def mutual_connections(self, user_a: str, user_b: str, connections: ConnectionsLike) -> list[str]:
        G = _as_graph(connections)
        return sorted((_neighbors(G, user_a) & _neighbors(G, user_b)) - {user_a, user_b})

    def friends_of_friends(self, user_id: str, connections: ConnectionsLike) -> list[str]:
        G = _as_graph(connections)
        direct = _neighbors(G, user_id)
        second: set[str] = set()
        for friend in direct:
            second |= _neighbors(G, friend)
        return sorted(second - direct - {user_id})

    def community_members(self, user_id: str, communities: Sequence[Community]) -> list[str]:
        members: set[str] = set()
        for community in communities:
            if user_id in community.members:
                members |= community.members
        members.discard(user_id)
        return sorted(members)

    def event_attendees(self, user_id: str, events: Sequence[Event]) -> list[str]:
        attendees: set[str] = set()
        for event in events:
            if user_id in event.attendees:
                attendees |= event.attendees
        attendees.discard(user_id)
        return sorted(attendees)

    # -- trust paths -----------------------------------------------------------

    def shortest_trust_path(
        self,
        start_id: str,
        target_id: str,
        connections: ConnectionsLike,
        max_hops: int | None = None,
    ) -> list[str]:
        """Breadth-first search limited to ``max_hops`` edges.

        Returns the node path including both ends, or an empty list when the
        target is unreachable within the bound.
        """
        G = _as_graph(connections)
        max_hops = self.max_hops if max_hops is None else max_hops
        if start_id not in G or target_id not in G:
            return []
        if start_id == target_id:
            return [start_id]

        queue: deque[list[str]] = deque([[start_id]])
        visited = {start_id}
        while queue:
            path = queue.popleft()
            if len(path) - 1 >= max_hops:
                continue
            for nxt in sorted(G.neighbors(path[-1])):
                if nxt in visited:
                    continue
                if nxt == target_id:
                    return path + [nxt]
                visited.add(nxt)
                queue.append(path + [nxt])
        return []

    def trust_score(self, path: Sequence[str], connections: ConnectionsLike, now: datetime | None = None) -> float:
        if len(path) <= 1:
            return 0.0
        G = _as_graph(connections)
        now = now or datetime.now(timezone.utc)

        hops = len(path) - 1
        score = 100.0 * float(self.cfg["TRUST_DECAY"]) ** hops
        for a, b in zip(path, path[1:]):
            if not G.has_edge(a, b):
                continue
            age_days = days_between(now, G[a][b]["created_at"])
            score *= min(1.2, 1.0 + (age_days / 365.0) * 0.2)
        return min(100.0, score)

    def recommendations_by_trust_path(
        self,
        user_id: str,
        connections: ConnectionsLike,
        max_hops: int | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        G = _as_graph(connections)
        out: list[dict[str, Any]] = []
        for candidate_id in self.friends_of_friends(user_id, G):
            path = self.shortest_trust_path(user_id, candidate_id, G, max_hops=max_hops)
            if not path:
                continue
            out.append(
                {
                    "user_id": candidate_id,
                    "trust_score": round(self.trust_score(path, G, now=now), 6),
                    "path": path,
                }
            )
        out.sort(key=lambda r: (-r["trust_score"], r["user_id"]))
        return out

    # -- influence & cohesion --------------------------------------------------

    def influence_score(
        self,
        user_id: str,
        connections: ConnectionsLike,
        communities: Sequence[Community] = (),
        events: Sequence[Event] = (),
    ) -> float:
        G = _as_graph(connections)
        degree = len(_neighbors(G, user_id))
        led = sum(1 for c in communities if c.leader_id == user_id)
        organized = sum(1 for e in events if e.organizer == user_id)
        memberships = sum(1 for c in communities if user_id in c.members)

        score = min(50.0, degree * 2.0) + led * 15.0 + organized * 10.0 + min(20.0, memberships * 5.0)
        return min(100.0, score)

    def community_cohesion(self, communities: Sequence[Community], connections: ConnectionsLike) -> dict[str, float]:
        """Accepted-edge density among each community's members, as a percentage."""
        G = _as_graph(connections)
        out: dict[str, float] = {}
        for community in communities:
            if len(community.members) < 2:
                out[community.id] = 0.0
                continue
            sub = nx.Graph()
            sub.add_nodes_from(community.members)
            sub.add_edges_from(G.subgraph(community.members).edges())
            out[community.id] = round(nx.density(sub) * 100.0, 6)
        return out

    def network_analysis(
        self,
        user_id: str,
        connections: ConnectionsLike,
        communities: Sequence[Community] = (),
        events: Sequence[Event] = (),
    ) -> dict[str, Any]:
        G = _as_graph(connections)
        direct = _neighbors(G, user_id)
        mutual_counts = {
            other: len(self.mutual_connections(user_id, other, G))
            for other in self.friends_of_friends(user_id, G)
        }
        ego_density = 0.0
        if len(direct) >= 2:
            ego_density = nx.density(G.subgraph(direct)) * 100.0

        memberships = [c for c in communities if user_id in c.members]
        analysis = {
            "user_id": user_id,
            "connection_count": len(direct),
            "mutual_connections": mutual_counts,
            "friends_of_friends": len(mutual_counts),
            "community_memberships": len(memberships),
            "influence_score": self.influence_score(user_id, G, communities, events),
            "network_density": round(ego_density, 6),
            "clustering": round(nx.clustering(G, user_id), 6) if user_id in G else 0.0,
        }
        logger.debug("[GRAPH] analysis user_id=%s connections=%s", user_id, analysis["connection_count"])
        return analysis
