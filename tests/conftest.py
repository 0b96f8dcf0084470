import pytest

from edu_advisor.catalog import UniversityCatalog
from edu_advisor.types import StudentProfile, University


def _university(record_id: str, tier: int, cost: float, *tags: str) -> University:
    return University(
        record_id=record_id,
        name=record_id.upper(),
        selectivity_tier=tier,
        annual_cost=cost,
        tags=frozenset(tags),
    )


@pytest.fixture
def catalog() -> UniversityCatalog:
    # Fallback order for `profile`: tum, monash, oxford, ubc, state, toronto, mit, stanford
    return UniversityCatalog(
        [
            _university("mit", 5, 57_000, "engineering", "computer science"),
            _university("stanford", 5, 58_000, "engineering", "business"),
            _university("oxford", 5, 12_000, "medicine", "law"),
            _university("tum", 4, 3_000, "engineering"),
            _university("toronto", 4, 45_000, "medicine", "computer science"),
            _university("ubc", 3, 35_000, "business"),
            _university("monash", 3, 32_000, "engineering"),
            _university("state", 2, 10_000, "business", "education"),
        ]
    )


@pytest.fixture
def profile() -> StudentProfile:
    return StudentProfile(
        strength_tier=4,
        budget_min=0,
        budget_max=40_000,
        preferred_categories=frozenset({"engineering"}),
    )
