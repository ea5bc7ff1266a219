import pytest

from similarity_engine import InMemoryMatrixStore, ItemRecommender, build_recommender_config
from server.storage import SqliteMatrixStore


@pytest.fixture
def memory_store():
    return InMemoryMatrixStore()


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteMatrixStore(str(tmp_path / "store.sqlite3"))


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryMatrixStore()
    return SqliteMatrixStore(str(tmp_path / "store.sqlite3"))


@pytest.fixture
def orders_config():
    return build_recommender_config(
        name="test_rec",
        input_matrices=[{"name": "orders", "weight": 5.0, "similarity": "jaccard"}],
        max_neighbors=50,
        process_workers=1,
    )


@pytest.fixture
def two_signal_config():
    return build_recommender_config(
        name="test_rec",
        input_matrices=[
            {"name": "orders", "weight": 1.0, "similarity": "jaccard"},
            {"name": "likes", "weight": 2.0, "similarity": "cosine"},
        ],
        max_neighbors=50,
        process_workers=2,
    )


@pytest.fixture
def recommender(memory_store, orders_config):
    return ItemRecommender(memory_store, orders_config)
