from collections import Counter

import pytest

from batch_review.analysis.diff_parser import ChangeType, Hunk
from batch_review.planning.models import Batch, PlanningOptions, Priority, Strategy
from batch_review.planning.planner import BatchPlanner, estimate_hunk_tokens, estimate_total_tokens


@pytest.fixture
def planner():
    return BatchPlanner()


def _hunks(make_hunk, paths, content="-x\n+y"):
    return [make_hunk(file_path=p, content=content, new_line_start=i + 1) for i, p in enumerate(paths)]


def test_small_review_uses_single_strategy(planner, make_hunk):
    hunks = _hunks(make_hunk, ["src/a.ts"] * 4 + ["src/b.ts"] * 3)

    plan = planner.create_plan(hunks)

    assert plan.strategy == Strategy.SINGLE
    assert len(plan.batches) == 1
    assert plan.batches[0].id == "single"
    assert plan.batches[0].files == ("src/a.ts", "src/b.ts")
    assert plan.batches[0].description == "Complete review: 2 files, 7 hunks"
    assert plan.total_files == 2
    assert plan.total_hunks == 7


def test_large_review_with_critical_file_is_batched(planner, make_hunk):
    paths = ["package.json" if i % 12 == 0 else f"src/mod{i % 12}.ts" for i in range(30)]
    hunks = _hunks(make_hunk, paths)

    plan = planner.create_plan(hunks)

    assert plan.strategy == Strategy.BATCH
    assert len(plan.batches) > 1
    critical = [b for b in plan.batches if "package.json" in b.files]
    assert len(critical) == 1
    assert critical[0].priority == Priority.HIGH
    assert critical[0].id == "critical-1-1"
    assert plan.batches[0] is critical[0]


@pytest.mark.parametrize("batch_strategy", ["file-based", "size-based", "mixed"])
def test_every_hunk_lands_in_exactly_one_batch(planner, make_hunk, batch_strategy):
    paths = [f"src/f{i % 7}.{ext}" for i, ext in enumerate(["ts", "py", "json", "md", "css"] * 9)]
    hunks = _hunks(make_hunk, paths, content="+" + "z" * 300)
    options = PlanningOptions(
        max_tokens_per_batch=1000,
        max_files_per_batch=3,
        max_hunks_per_batch=5,
        batch_strategy=batch_strategy,
        force_strategy=Strategy.BATCH,
    )

    plan = planner.create_plan(hunks, options)

    seen = Counter(id(h) for b in plan.batches for h in b.hunks)
    assert len(seen) == len(hunks)
    assert set(seen.values()) == {1}
    assert len({b.id for b in plan.batches}) == len(plan.batches)
    for batch in plan.batches:
        assert len(batch.hunks) <= 5
        assert len(batch.files) <= 3
        assert batch.estimated_tokens <= 1000 or len(batch.hunks) == 1
        assert batch.estimated_tokens == estimate_total_tokens(batch.hunks)


def test_oversized_hunk_gets_its_own_batch(planner, make_hunk):
    small = make_hunk(file_path="a.py", content="+ok")
    big = make_hunk(file_path="a.py", content="+" + "x" * 1000)

    batches = planner.split_hunks_into_batches([small, big, small], 100, 10, 10, "p")

    assert [b.id for b in batches] == ["p-1", "p-2", "p-3"]
    assert batches[1].hunks == (big,)
    assert batches[1].estimated_tokens > 100


def test_file_ceiling_closes_batch(planner, make_hunk):
    hunks = _hunks(make_hunk, ["a.py", "b.py", "c.py"])

    batches = planner.split_hunks_into_batches(hunks, 10000, 2, 10, "p")

    assert [len(b.hunks) for b in batches] == [2, 1]


def test_excluded_file_types_are_dropped(planner, make_hunk):
    hunks = _hunks(make_hunk, ["yarn.lock", "logs/app.LOG", "src/a.ts"])
    options = PlanningOptions(exclude_file_types=[".lock", "LOG"])

    plan = planner.create_plan(hunks, options)

    assert plan.total_hunks == 1
    assert plan.batches[0].files == ("src/a.ts",)


def test_empty_input_yields_empty_plan(planner):
    plan = planner.create_plan([])

    assert plan.batches == ()
    assert plan.total_hunks == 0
    assert plan.estimated_tokens == 0
    assert planner.get_summary(plan) == "No changes to review"


def test_token_estimate():
    hunk = Hunk(
        file_path="abcd",
        change_type=ChangeType.EDIT,
        old_line_start=1,
        old_line_count=1,
        new_line_start=1,
        new_line_count=1,
        content="-a\n+bcdef",
    )

    assert estimate_hunk_tokens(hunk) == 1 + 3 + 20


def test_token_estimate_grows_with_content(make_hunk):
    short = make_hunk(content="+a")
    long = make_hunk(content="+" + "a" * 200)

    assert estimate_hunk_tokens(long) > estimate_hunk_tokens(short)


def test_test_only_batch_has_low_priority(planner, make_hunk):
    hunks = _hunks(make_hunk, ["tests/test_a.py", "tests/test_b.py"])
    options = PlanningOptions(batch_strategy="file-based", force_strategy=Strategy.BATCH)

    plan = planner.create_plan(hunks, options)

    assert [b.id for b in plan.batches] == ["tests-1-1"]
    assert plan.batches[0].priority == Priority.LOW
    assert plan.batches[0].description == "2 files (tests), 2 hunks"


def test_size_based_puts_prioritized_types_first(planner, make_hunk):
    big_ts = make_hunk(file_path="src/a.ts", content="+" + "t" * 400)
    small_py = make_hunk(file_path="src/b.py", content="+p")
    options = PlanningOptions(
        batch_strategy="size-based",
        prioritize_file_types=["PY"],
        force_strategy=Strategy.BATCH,
    )

    plan = planner.create_plan([big_ts, small_py], options)

    assert plan.batches[0].id == "size-based-1"
    assert plan.batches[0].hunks == (small_py, big_ts)


def test_size_based_orders_largest_first(planner, make_hunk):
    small = make_hunk(file_path="src/a.ts", content="+a")
    big = make_hunk(file_path="src/b.ts", content="+" + "b" * 400)
    options = PlanningOptions(batch_strategy="size-based", force_strategy=Strategy.BATCH)

    plan = planner.create_plan([small, big], options)

    assert plan.batches[0].hunks == (big, small)


def test_mixed_high_tier_respects_tier_hunk_cap(planner, make_hunk):
    hunks = _hunks(make_hunk, ["src/a.ts"] * 10)
    options = PlanningOptions(force_strategy=Strategy.BATCH)

    plan = planner.create_plan(hunks, options)

    assert [b.id for b in plan.batches] == ["high-1-1", "high-1-2"]
    assert [len(b.hunks) for b in plan.batches] == [6, 4]


def test_extension_diversity_triggers_batching(planner, make_hunk):
    hunks = _hunks(make_hunk, ["a.py", "b.ts", "c.go", "d.rb", "e.rs"])

    assert planner.create_plan(hunks).strategy == Strategy.BATCH


def test_file_diversity_triggers_batching(planner, make_hunk):
    hunks = _hunks(make_hunk, [f"src/m{i}.ts" for i in range(9)])

    assert planner.create_plan(hunks).strategy == Strategy.BATCH


def test_large_hunks_trigger_batching(planner, make_hunk):
    hunks = _hunks(make_hunk, ["src/a.ts"] * 4, content="+" + "q" * 1000)

    assert planner.create_plan(hunks).strategy == Strategy.BATCH


def test_force_single_strategy(planner, make_hunk):
    hunks = _hunks(make_hunk, [f"src/m{i}.ts" for i in range(30)])

    plan = planner.create_plan(hunks, PlanningOptions(force_strategy=Strategy.SINGLE))

    assert plan.strategy == Strategy.SINGLE
    assert len(plan.batches) == 1
    assert len(plan.batches[0].hunks) == 30


def test_update_heuristics(planner, make_hunk):
    hunks = _hunks(make_hunk, ["src/a.ts"] * 7)
    assert planner.create_plan(hunks).strategy == Strategy.SINGLE

    planner.update_heuristics(large_review_threshold=5)

    assert planner.heuristics.large_review_threshold == 5
    assert planner.create_plan(hunks).strategy == Strategy.BATCH


def test_estimate_duration_and_summary(planner, make_hunk):
    batch = Batch(
        id="b-1",
        hunks=tuple(_hunks(make_hunk, ["a.py"])),
        files=("a.py",),
        estimated_tokens=1000,
        priority=Priority.MEDIUM,
        description="",
    )

    assert planner.estimate_duration([batch, batch]) == pytest.approx(80.0)

    plan = planner.create_plan(_hunks(make_hunk, ["src/a.ts"] * 2))
    assert planner.get_summary(plan).startswith("single strategy: 1 batches, 1 files, 2 hunks")


def test_plan_to_dict(planner, make_hunk):
    plan = planner.create_plan(_hunks(make_hunk, ["src/a.ts"] * 2))

    data = plan.to_dict()

    assert data["strategy"] == "single"
    assert data["batches"][0]["hunk_count"] == 2
    assert data["batches"][0]["priority"] == "medium"


def test_options_from_settings(settings):
    options = PlanningOptions.from_settings(settings)

    assert options.max_tokens_per_batch == settings.MAX_TOKENS_PER_BATCH
    assert options.batch_strategy == settings.BATCH_STRATEGY
