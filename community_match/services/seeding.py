import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from community_match.models import (
    ATTENDANCE_LEVELS,
    AVAILABILITY_LEVELS,
    PRACTICE_LEVELS,
    PRAYER_FREQUENCIES,
    Community,
    Connection,
    Event,
    Interests,
    Lifestyle,
    Location,
    PracticeProfile,
    Profile,
)

CITY_CLUSTERS = {
    "london": {
        "weight": 0.4,
        "location": (51.5074, -0.1278, "London", "UK", "Europe/London"),
        "languages": {"English": 3.0, "Urdu": 1.2, "Arabic": 1.0, "Bengali": 0.9},
    },
    "birmingham": {
        "weight": 0.25,
        "location": (52.4862, -1.8904, "Birmingham", "UK", "Europe/London"),
        "languages": {"English": 3.0, "Urdu": 1.6, "Punjabi": 1.0},
    },
    "toronto": {
        "weight": 0.35,
        "location": (43.6532, -79.3832, "Toronto", "Canada", "America/Toronto"),
        "languages": {"English": 3.0, "French": 1.2, "Arabic": 1.0, "Somali": 0.6},
    },
}

FIRST_NAMES = ["Amina", "Sara", "Layla", "Noor", "Maryam", "Huda", "Zainab", "Iman", "Yasmin", "Aisha"]
HOBBIES = ["reading", "hiking", "cooking", "photography", "calligraphy", "running", "gardening", "painting"]
ACTIVITIES = ["volunteering", "book club", "swimming", "cycling", "board games"]
FAITH_INTERESTS = ["scripture study", "history", "recitation", "charity work", "community service"]
STUDY_INTERESTS = ["arabic", "theology", "jurisprudence", "history", "languages"]
PROFESSIONAL_INTERESTS = ["technology", "healthcare", "education", "finance", "design"]
TIME_SLOTS = ["morning", "afternoon", "evening", "weekend"]
WORK_STATUSES = {"working": 3.0, "student": 2.0, "homemaker": 1.0, "retired": 0.4, "unemployed": 0.4}
FAMILY_STATUSES = {"single": 2.5, "married": 1.5, "married_with_children": 1.5, "widowed": 0.3}


def _pick_cluster(rng: random.Random) -> str:
    names = list(CITY_CLUSTERS.keys())
    weights = [CITY_CLUSTERS[n]["weight"] for n in names]
    return rng.choices(names, weights=weights, k=1)[0]


def _weighted_choice(rng: random.Random, weight_map: dict[str, float]) -> str:
    values = list(weight_map.keys())
    return rng.choices(values, weights=[weight_map[v] for v in values], k=1)[0]


def _sample(rng: random.Random, pool: list[str], low: int = 1, high: int = 3) -> tuple[str, ...]:
    n = rng.randint(low, min(high, len(pool)))
    return tuple(rng.sample(pool, n))


def _jitter(rng: random.Random, value: float, spread: float = 0.15) -> float:
    return round(value + rng.uniform(-spread, spread), 6)


def generate_profile(idx: int, rng: random.Random, now: datetime) -> Profile:
    cluster = CITY_CLUSTERS[_pick_cluster(rng)]
    lat, lon, city, country, tz = cluster["location"]
    primary = _weighted_choice(rng, cluster["languages"])
    secondary = tuple(
        lang for lang in cluster["languages"] if lang != primary and rng.random() < 0.3
    )

    work_status = _weighted_choice(rng, WORK_STATUSES)
    family_status = _weighted_choice(rng, FAMILY_STATUSES)
    has_dependents = family_status == "married_with_children" or rng.random() < 0.05
    new_to_community = rng.random() < 0.15

    return Profile(
        id=str(uuid.UUID(int=rng.getrandbits(128))),
        first_name=f"{rng.choice(FIRST_NAMES)} {idx:04d}",
        age=max(18, min(70, int(rng.normalvariate(31, 8)))),
        location=Location(latitude=_jitter(rng, lat), longitude=_jitter(rng, lon), city=city, country=country, timezone=tz),
        languages=(primary,),
        secondary_languages=secondary,
        practice=PracticeProfile(
            practice_level=rng.choice(PRACTICE_LEVELS),
            prayer_frequency=rng.choice(PRAYER_FREQUENCIES),
            visible_marker=rng.random() < 0.6,
            attendance=rng.choice(ATTENDANCE_LEVELS),
            scripture_study_interest=rng.random() < 0.5,
            history_interest=rng.random() < 0.4,
            language_learning_interest=rng.random() < 0.4,
            new_to_community=new_to_community,
            years_in_community=rng.randint(0, 2) if new_to_community else rng.randint(3, 30),
        ),
        interests=Interests(
            hobbies=_sample(rng, HOBBIES),
            activities=_sample(rng, ACTIVITIES, 0, 2),
            faith_interests=_sample(rng, FAITH_INTERESTS),
            study_interests=_sample(rng, STUDY_INTERESTS, 0, 2),
            professional_interests=_sample(rng, PROFESSIONAL_INTERESTS, 0, 2),
        ),
        lifestyle=Lifestyle(
            work_status=work_status,
            study_status="full_time" if work_status == "student" else rng.choice(["not_studying", "not_studying", "part_time"]),
            family_status=family_status,
            has_dependents=has_dependents,
            dependents_count=rng.randint(1, 4) if has_dependents else 0,
            availability=rng.choice(AVAILABILITY_LEVELS),
            preferred_time_slots=_sample(rng, TIME_SLOTS, 1, 3),
        ),
        created_at=now - timedelta(days=rng.randint(30, 900)),
        last_active=now - timedelta(days=rng.randint(0, 45), hours=rng.randint(0, 23)),
        verified=rng.random() < 0.9,
    )


def generate_connections(
    profiles: list[Profile],
    rng: random.Random,
    now: datetime,
    per_user: int = 3,
) -> list[Connection]:
    seen: set[tuple[str, str]] = set()
    out: list[Connection] = []
    ids = [p.id for p in profiles]
    for uid in ids:
        for other in rng.sample(ids, min(per_user, len(ids))):
            pair = tuple(sorted((uid, other)))
            if other == uid or pair in seen:
                continue
            seen.add(pair)
            created = now - timedelta(days=rng.randint(1, 720))
            status = rng.choices(["accepted", "pending", "declined"], weights=[0.75, 0.15, 0.10], k=1)[0]
            out.append(
                Connection(
                    id=str(uuid.UUID(int=rng.getrandbits(128))),
                    user1_id=pair[0],
                    user2_id=pair[1],
                    initiated_by=uid,
                    status=status,
                    created_at=created,
                    accepted_at=created + timedelta(days=rng.randint(0, 5)) if status == "accepted" else None,
                )
            )
    return out


def generate_communities(profiles: list[Profile], rng: random.Random) -> list[Community]:
    out: list[Community] = []
    by_city: dict[str, list[str]] = {}
    for p in profiles:
        by_city.setdefault(p.location.city, []).append(p.id)
    for city, members in sorted(by_city.items()):
        for n in range(2):
            chosen = rng.sample(members, max(1, min(len(members), rng.randint(3, 25))))
            out.append(
                Community(
                    id=f"{city.lower()}-{n}",
                    name=f"{city} circle {n + 1}",
                    members=frozenset(chosen),
                    leader_id=chosen[0],
                    affiliation=f"{city} Central" if n == 0 else None,
                )
            )
    return out


def generate_events(profiles: list[Profile], rng: random.Random, now: datetime, count: int = 10) -> list[Event]:
    out: list[Event] = []
    ids = [p.id for p in profiles]
    if not ids:
        return out
    for n in range(count):
        start = now - timedelta(days=rng.randint(0, 365))
        attendees = rng.sample(ids, min(len(ids), rng.randint(2, 12)))
        out.append(
            Event(
                id=f"event-{n:03d}",
                title=f"Community gathering {n + 1}",
                organizer=attendees[0],
                attendees=frozenset(attendees),
                start=start,
                end=start + timedelta(hours=2),
                category=rng.choice(["religious", "educational", "social", "professional", "charity"]),
            )
        )
    return out


def generate_pool(n: int, seed: int = 7, now: datetime | None = None) -> dict[str, Any]:
    """Deterministic synthetic pool: profiles plus the social context around them."""
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    profiles = [generate_profile(i, rng, now) for i in range(n)]
    return {
        "profiles": profiles,
        "connections": generate_connections(profiles, rng, now),
        "communities": generate_communities(profiles, rng),
        "events": generate_events(profiles, rng, now),
    }


def dump_pool(pool: dict[str, Any]) -> dict[str, Any]:
    return {key: [item.model_dump(mode="json") for item in items] for key, items in pool.items()}


def load_pool(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "profiles": [Profile.model_validate(p) for p in data.get("profiles", [])],
        "connections": [Connection.model_validate(c) for c in data.get("connections", [])],
        "communities": [Community.model_validate(c) for c in data.get("communities", [])],
        "events": [Event.model_validate(e) for e in data.get("events", [])],
    }
