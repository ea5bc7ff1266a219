"""
Tests for ingestion, processing and reads on ItemRecommender
"""

import pytest

from common.errors import ConcurrentProcessingConflict, InvalidInteraction, StoreUnavailable, UnknownMatrix
from similarity_engine import (
    InMemoryMatrixStore,
    ItemRecommender,
    ItemState,
    NeighborEntry,
    build_recommender_config,
)
from similarity_engine.similarity_functions import SIMILARITY_FUNCTIONS, register_similarity_function


class TestIngestion:
    def test_add_set_counts_pairs_and_marginals(self, recommender):
        distinct = recommender.add_set("orders", "o1", ["item23", "item65", "item23"])
        orders = recommender.input_matrix("orders")

        assert distinct == ["item23", "item65"]
        assert orders.cooccurrence("item23", "item65") == 1
        assert orders.cooccurrence("item65", "item23") == 1
        assert orders.cooccurrence("item23", "item23") == 0
        assert orders.marginal("item23") == 1
        assert orders.marginal("item65") == 1
        assert orders.set_count() == 1

    def test_cooccurrence_symmetric_and_incremented(self, recommender):
        orders = recommender.input_matrix("orders")
        for n, bucket in enumerate(["b1", "b2", "b3"], start=1):
            recommender.add_set("orders", bucket, ["a", "b", "c"])
            assert orders.cooccurrence("a", "b") == n
            assert orders.cooccurrence("b", "a") == n
            assert orders.cooccurrence("c", "a") == n

    def test_single_item_set(self, recommender):
        recommender.add_set("orders", "solo", ["lonely"])
        orders = recommender.input_matrix("orders")

        assert orders.marginal("lonely") == 1
        assert orders.set_count() == 1
        assert orders.cooccurrence_row("lonely") == []
        assert recommender.process_item("lonely") == []

    def test_items_are_marked_dirty(self, recommender):
        recommender.add_set("orders", "o1", ["x", "y"])
        assert recommender.dirty_items() == ["x", "y"]
        assert recommender.item_state("x") == ItemState.DIRTY
        assert recommender.item_state("never_seen") == ItemState.CLEAN

    def test_all_items(self, recommender):
        recommender.add_set("orders", "o1", ["x", "y"])
        recommender.add_set("orders", "o2", ["z"])
        assert recommender.all_items() == {"x", "y", "z"}

    def test_empty_set_rejected(self, recommender):
        with pytest.raises(InvalidInteraction):
            recommender.add_set("orders", "o1", [])
        assert recommender.input_matrix("orders").set_count() == 0

    @pytest.mark.parametrize(
        "items",
        [["a", "b:c"], ["a", ""], ["a", 7], ["a", "line\nbreak"], "ab"],
    )
    def test_invalid_items_rejected_before_any_write(self, recommender, items):
        with pytest.raises(InvalidInteraction):
            recommender.add_set("orders", "o1", items)

        orders = recommender.input_matrix("orders")
        assert orders.marginal("a") == 0
        assert orders.set_count() == 0
        assert recommender.all_items() == set()
        assert recommender.dirty_items() == []

    def test_invalid_bucket_rejected(self, recommender):
        with pytest.raises(InvalidInteraction):
            recommender.add_set("orders", "bucket:1", ["a", "b"])
        with pytest.raises(InvalidInteraction):
            recommender.add_set("orders", "", ["a", "b"])

    def test_unknown_matrix(self, recommender):
        with pytest.raises(UnknownMatrix):
            recommender.add_set("views", "v1", ["a", "b"])
        with pytest.raises(KeyError):
            recommender.input_matrix("views")

    def test_add_single(self, recommender):
        recommender.add_set("orders", "o1", ["a", "b"])
        recommender.process()
        recommender.add_single("orders", "o1", "c", ["a", "b", "a"])
        orders = recommender.input_matrix("orders")

        assert orders.cooccurrence("c", "a") == 1
        assert orders.cooccurrence("b", "c") == 1
        assert orders.cooccurrence("a", "b") == 1
        assert orders.marginal("c") == 1
        assert orders.marginal("a") == 1
        assert orders.set_count() == 1
        assert recommender.dirty_items() == ["a", "b", "c"]

    def test_add_single_rejects_bad_ids(self, recommender):
        with pytest.raises(InvalidInteraction):
            recommender.add_single("orders", "o1", "c", ["a", "bad:id"])
        assert recommender.input_matrix("orders").marginal("c") == 0


class TestProcessing:
    def test_orders_scenario(self, recommender):
        recommender.add_set("orders", "o1", ["item23", "item65", "item23"])
        assert recommender.input_matrix("orders").similarity("item23", "item65") == 1.0

        recommender.add_set("orders", "o2", ["item14", "item23"])

        orders = recommender.input_matrix("orders")
        assert orders.cooccurrence("item14", "item23") == 1
        assert orders.marginal("item14") == 1
        assert orders.marginal("item23") == 2
        # item23 now sits in two sets, so both neighbors score 1 / (2 + 1 - 1)
        assert orders.similarity("item23", "item65") == 0.5
        assert orders.similarity("item23", "item14") == 0.5

        neighbors = recommender.process_item("item23")

        assert neighbors == [NeighborEntry("item14", 2.5), NeighborEntry("item65", 2.5)]
        assert recommender.neighbors_for("item23") == neighbors

    def test_orders_scenario_single_set(self, recommender):
        recommender.add_set("orders", "o1", ["item23", "item65", "item23"])
        assert recommender.process_item("item23") == [NeighborEntry("item65", 5.0)]

    def test_orders_scenario_normalized(self, memory_store):
        config = build_recommender_config(
            name="norm",
            input_matrices=[{"name": "orders", "weight": 5.0, "similarity": "jaccard"}],
            normalize_weights=True,
        )
        rec = ItemRecommender(memory_store, config)
        rec.add_set("orders", "o1", ["item23", "item65", "item23"])
        rec.add_set("orders", "o2", ["item14", "item23"])
        rec.add_set("orders", "o3", ["item14", "item23"])

        # jaccard: item14 -> 2 / (3 + 2 - 2), item65 -> 1 / (3 + 1 - 1)
        neighbors = rec.process_item("item23")
        assert [n.item_id for n in neighbors] == ["item14", "item65"]
        assert neighbors[0].similarity == pytest.approx(2 / 3)
        assert neighbors[1].similarity == pytest.approx(1 / 3)

    def test_processing_is_idempotent(self, recommender):
        recommender.add_set("orders", "o1", ["a", "b", "c"])
        recommender.add_set("orders", "o2", ["a", "c"])
        recommender.add_set("orders", "o3", ["a", "d"])

        first = recommender.process_item("a")
        second = recommender.process_item("a")
        assert first == second
        assert repr(first) == repr(second)

    def test_weighted_union_ordering(self, memory_store, two_signal_config):
        rec = ItemRecommender(memory_store, two_signal_config)
        rec.add_set("orders", "o1", ["s", "X"])
        rec.add_set("orders", "o2", ["s", "Y"])
        rec.add_set("orders", "o3", ["Y", "z"])
        rec.add_set("likes", "u1", ["s", "Y"])

        orders = rec.input_matrix("orders")
        likes = rec.input_matrix("likes")
        jaccard_x = orders.similarity("s", "X")
        jaccard_y = orders.similarity("s", "Y")
        cosine_y = likes.similarity("s", "Y")
        assert jaccard_x > jaccard_y
        assert likes.similarity("s", "X") == 0.0

        neighbors = rec.process_item("s")

        expected_x = 1.0 * jaccard_x + 0
        expected_y = 1.0 * jaccard_y + 2.0 * cosine_y
        assert [n.item_id for n in neighbors] == ["Y", "X"]
        assert neighbors[0].similarity == pytest.approx(expected_y)
        assert neighbors[1].similarity == pytest.approx(expected_x)

    def test_candidate_from_one_signal_only(self, memory_store, two_signal_config):
        rec = ItemRecommender(memory_store, two_signal_config)
        rec.add_set("likes", "u1", ["s", "only_liked"])
        rec.add_set("orders", "o1", ["s", "only_ordered"])

        ids = {n.item_id for n in rec.process_item("s")}
        assert ids == {"only_liked", "only_ordered"}

    def test_top_n_cap_and_tie_order(self, memory_store):
        config = build_recommender_config(
            name="capped",
            input_matrices=[{"name": "orders", "weight": 1.0, "similarity": "jaccard"}],
            max_neighbors=2,
        )
        rec = ItemRecommender(memory_store, config)
        rec.add_set("orders", "b1", ["s", "c", "a", "b"])

        neighbors = rec.process_item("s")
        assert neighbors == [("a", 1.0), ("b", 1.0)]

    def test_scores_non_increasing(self, recommender):
        recommender.add_set("orders", "o1", ["s", "a", "b", "c"])
        recommender.add_set("orders", "o2", ["s", "a", "b"])
        recommender.add_set("orders", "o3", ["s", "a"])
        recommender.add_set("orders", "o4", ["c", "d"])

        neighbors = recommender.process_item("s")
        scores = [n.similarity for n in neighbors]
        assert scores == sorted(scores, reverse=True)
        assert [n.item_id for n in neighbors] == ["a", "b", "c"]
        assert len(neighbors) <= recommender.max_neighbors

    def test_never_processed_item_reads_empty(self, recommender):
        assert recommender.neighbors_for("unknown") == []

    def test_reads_do_not_recompute(self, recommender):
        recommender.add_set("orders", "o1", ["a", "b"])
        recommender.process_item("a")
        recommender.add_set("orders", "o2", ["a", "c"])

        # stale until processed again
        assert [n.item_id for n in recommender.neighbors_for("a")] == ["b"]
        recommender.process_item("a")
        assert {n.item_id for n in recommender.neighbors_for("a")} == {"b", "c"}

    def test_neighbors_for_limit(self, recommender):
        recommender.add_set("orders", "o1", ["s", "a", "b", "c"])
        recommender.process_item("s")
        assert len(recommender.neighbors_for("s", limit=2)) == 2

    def test_process_clears_dirty_set(self, memory_store, two_signal_config):
        rec = ItemRecommender(memory_store, two_signal_config)
        rec.add_set("orders", "o1", ["a", "b", "c"])
        rec.add_set("likes", "u1", ["a", "d"])

        summary = rec.process()
        assert summary["processed"] == ["a", "b", "c", "d"]
        assert summary["skipped"] == []
        assert summary["failed"] == []
        assert rec.dirty_items() == []
        assert all(rec.item_state(i) == ItemState.CLEAN for i in "abcd")
        assert {n.item_id for n in rec.neighbors_for("a")} == {"b", "c", "d"}

    def test_process_only_touches_dirty_items(self, recommender):
        recommender.add_set("orders", "o1", ["a", "b"])
        recommender.process()
        recommender.add_set("orders", "o2", ["c", "d"])

        summary = recommender.process()
        assert summary["processed"] == ["c", "d"]

    def test_full_process(self, recommender):
        recommender.add_set("orders", "o1", ["a", "b"])
        recommender.process()

        summary = recommender.process(full=True)
        assert summary["processed"] == ["a", "b"]


class TestDirtyStateMachine:
    def test_failed_processing_leaves_item_dirty(self, memory_store):
        def broken(c, a, b, n=None):
            raise RuntimeError("boom")

        register_similarity_function("broken_test", broken)
        try:
            config = build_recommender_config(
                name="broken",
                input_matrices=[{"name": "orders", "weight": 1.0, "similarity": "broken_test"}],
                process_workers=1,
            )
            rec = ItemRecommender(memory_store, config)
            rec.add_set("orders", "o1", ["a", "b"])

            with pytest.raises(RuntimeError):
                rec.process_item("a")
            assert rec.item_state("a") == ItemState.DIRTY

            summary = rec.process()
            assert summary["failed"] == ["a", "b"]
            assert rec.dirty_items() == ["a", "b"]
        finally:
            SIMILARITY_FUNCTIONS.pop("broken_test", None)

    def test_ingestion_during_processing_keeps_item_dirty(self, memory_store):
        seen_states = []
        holder = {}

        def ingesting_jaccard(c, a, b, n=None):
            rec = holder["rec"]
            seen_states.append(rec.item_state("a"))
            if len(seen_states) == 1:
                rec.add_set("orders", "late", ["a", "late_item"])
            return SIMILARITY_FUNCTIONS["jaccard"](c, a, b, n)

        register_similarity_function("ingesting_test", ingesting_jaccard)
        try:
            config = build_recommender_config(
                name="racy",
                input_matrices=[{"name": "orders", "weight": 1.0, "similarity": "ingesting_test"}],
            )
            rec = ItemRecommender(memory_store, config)
            holder["rec"] = rec
            rec.add_set("orders", "o1", ["a", "b"])

            rec.process_item("a")

            assert seen_states[0] == ItemState.PROCESSING
            assert rec.item_state("a") == ItemState.DIRTY
            assert "a" in rec.dirty_items()
        finally:
            SIMILARITY_FUNCTIONS.pop("ingesting_test", None)

    def test_lease_conflict(self, recommender, memory_store):
        recommender.add_set("orders", "o1", ["a", "b"])
        token = memory_store.acquire_lease(recommender.keys.lease("a"), 60)
        assert token is not None
        assert recommender.item_state("a") == ItemState.PROCESSING

        with pytest.raises(ConcurrentProcessingConflict):
            recommender.process_item("a")

        summary = recommender.process()
        assert summary["skipped"] == ["a"]
        assert summary["processed"] == ["b"]
        assert recommender.dirty_items() == ["a"]

        memory_store.release_lease(recommender.keys.lease("a"), token)
        assert recommender.process()["processed"] == ["a"]

    def test_store_failure_propagates_and_keeps_dirty(self, orders_config):
        class FlakyStore(InMemoryMatrixStore):
            fail = False

            def get_row(self, matrix, i):
                if self.fail:
                    raise StoreUnavailable("connection lost")
                return super().get_row(matrix, i)

        store = FlakyStore()
        rec = ItemRecommender(store, orders_config)
        rec.add_set("orders", "o1", ["a", "b"])
        store.fail = True

        with pytest.raises(StoreUnavailable):
            rec.process()
        assert rec.dirty_items() == ["a", "b"]

        store.fail = False
        assert rec.process()["processed"] == ["a", "b"]


class TestConfig:
    def test_defaults(self):
        config = build_recommender_config()
        assert config["name"] == "related_products"
        assert config["max_neighbors"] == 50
        assert [m["name"] for m in config["input_matrices"]] == ["orders", "likes"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_neighbors": 0},
            {"name": "bad:name"},
            {"input_matrices": []},
            {"input_matrices": [{"name": "orders", "weight": 0, "similarity": "jaccard"}]},
            {"input_matrices": [{"name": "orders", "weight": 1.0, "similarity": "nope"}]},
            {
                "input_matrices": [
                    {"name": "orders", "weight": 1.0, "similarity": "jaccard"},
                    {"name": "orders", "weight": 2.0, "similarity": "cosine"},
                ]
            },
        ],
    )
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            build_recommender_config(**kwargs)

    def test_recommenders_are_isolated_by_namespace(self, memory_store, orders_config):
        other_config = dict(orders_config, name="other_rec")
        rec_a = ItemRecommender(memory_store, orders_config)
        rec_b = ItemRecommender(memory_store, other_config)

        rec_a.add_set("orders", "o1", ["a", "b"])
        assert rec_b.all_items() == set()
        assert rec_b.dirty_items() == []


class TestStrategyShape:
    def test_scalar_strategy_fails_loudly_and_keeps_item_dirty(self, memory_store):
        def first_only(c, a, b, n=None):
            return float(c[0] / a)

        register_similarity_function("scalar_test", first_only)
        try:
            config = build_recommender_config(
                name="scalar",
                input_matrices=[{"name": "orders", "weight": 1.0, "similarity": "scalar_test"}],
                process_workers=1,
            )
            rec = ItemRecommender(memory_store, config)
            rec.add_set("orders", "o1", ["s", "a", "b"])

            with pytest.raises(ValueError, match="elementwise"):
                rec.process_item("s")
            assert rec.item_state("s") == ItemState.DIRTY
            assert rec.neighbors_for("s") == []
        finally:
            SIMILARITY_FUNCTIONS.pop("scalar_test", None)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
