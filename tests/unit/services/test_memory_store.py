import pytest

from chronoclue.interfaces.puzzle_store import GenerationLogEntry, ImportedEvent, PuzzleSelection
from chronoclue.services.memory_store import InMemoryPuzzleStore


@pytest.mark.asyncio
async def test_import_deduplicates_by_text():
    store = InMemoryPuzzleStore()

    await store.import_year_events(1815, [ImportedEvent("Wellington holds at Hougoumont")])
    await store.import_year_events(
        1815,
        [ImportedEvent("Wellington holds at Hougoumont"), ImportedEvent("Blucher marches west")],
    )

    assert [event.event for event in store.events_for(1815)] == [
        "Wellington holds at Hougoumont",
        "Blucher marches west",
    ]


@pytest.mark.asyncio
async def test_year_stats_are_sorted_and_count_usage():
    store = InMemoryPuzzleStore(
        events={1990: [ImportedEvent("a"), ImportedEvent("b")], -44: [ImportedEvent("c")]},
        used_counts={1990: 5},
    )

    stats = await store.get_year_stats()

    assert [stat.year for stat in stats] == [-44, 1990]
    assert stats[1].used == 2
    assert stats[1].available == 0


@pytest.mark.asyncio
async def test_logs_and_selections_are_recorded():
    store = InMemoryPuzzleStore(selections=[PuzzleSelection(1066)])
    store.add_selection(1815)

    await store.log_generation_attempt(
        GenerationLogEntry(year=1815, era="CE", status="success", attempt_count=1, events_generated=6)
    )

    assert [s.target_year for s in await store.get_puzzle_selections()] == [1066, 1815]
    assert store.logs[0].status == "success"
