from typing import Dict, List, Optional

from common.constants import PATHS
from common.utils import setup_logging
from similarity_engine import ItemRecommender, RecommenderConfig, SparseMatrixStore, build_recommender_config
from server.storage import SqliteMatrixStore

logger = setup_logging(__name__, PATHS["app_log_file"])


class SimilarityService:
    """Owns the store and the recommender the API talks to."""

    def __init__(self, store: Optional[SparseMatrixStore] = None, config: Optional[RecommenderConfig] = None):
        """Open the store and build the recommender once at startup."""
        logger.info("Initializing SimilarityService...")

        self.ready: bool = False
        self.init_error: Optional[str] = None
        self._store_arg = store
        self._config_arg = config

        try:
            self.store = store if store is not None else SqliteMatrixStore(PATHS["database"])
            self.config = config if config is not None else build_recommender_config()
            self.recommender = ItemRecommender(self.store, self.config)

            logger.info(
                f"✓ SimilarityService initialized: recommender={self.config['name']}, "
                f"matrices={[m['name'] for m in self.config['input_matrices']]}"
            )
            self.ready = True

        except Exception as e:
            self.init_error = str(e)
            logger.error(f"Failed to initialize SimilarityService: {self.init_error}")
            self.ready = False

    def reinitialize(self):
        """Re-attempt to initialize, e.g. after the store file became reachable."""
        logger.info("Attempting to reinitialize SimilarityService...")
        self.__init__(self._store_arg, self._config_arg)

    def status(self) -> Dict[str, object]:
        """Return readiness status and any initialization errors."""
        return {
            "ready": self.ready,
            "recommender": self.config["name"] if self.ready else None,
            "input_matrices": list(self.recommender.input_matrices) if self.ready else [],
            "error": self.init_error,
        }

    def _require_ready(self):
        if not self.ready:
            raise ValueError("Similarity service is not available")

    def add_set(self, matrix: str, bucket_id: str, items: List[str]) -> List[str]:
        self._require_ready()
        return self.recommender.add_set(matrix, bucket_id, items)

    def process(self, full: bool = False):
        self._require_ready()
        return self.recommender.process(full=full)

    def process_item(self, item_id: str):
        self._require_ready()
        return self.recommender.process_item(item_id)

    def neighbors_for(self, item_id: str, limit: Optional[int] = None):
        self._require_ready()
        return self.recommender.neighbors_for(item_id, limit=limit)

    def remove_item(self, item_id: str) -> List[str]:
        self._require_ready()
        return self.recommender.remove_item(item_id)

    def all_items(self) -> List[str]:
        self._require_ready()
        return sorted(self.recommender.all_items())

    def item_state(self, item_id: str) -> str:
        self._require_ready()
        return self.recommender.item_state(item_id).value
