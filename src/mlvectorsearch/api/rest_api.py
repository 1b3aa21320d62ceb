import logging
import sys
import time
from datetime import datetime
from typing import List, Dict, Any, NoReturn
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, status, Request

from .. import __version__
from ..exceptions import ConfigurationError, CollectionNotFoundError
from ..interfaces.query_processor import QueryProcessorProtocol
from ..interfaces.vector import VectorDTO
from .models import (
    BuildCollectionRequest, BuildCollectionResponse, KNNSearchRequest, RangeSearchRequest,
    BatchKNNSearchRequest, Neighbor, SearchResponse, BatchSearchResponse, CollectionInfo,
    HealthCheckResponse
)


def _to_neighbors(results: List[Dict[str, Any]]) -> List[Neighbor]:
    return [
        Neighbor(
            id=r["id"],
            index=r["index"],
            values=list(map(float, r["values"])),
            metadata=dict(r["metadata"]),
            distance=r["distance"],
        )
        for r in results
    ]


class RestAPI:
    def __init__(
            self,
            query_processor: QueryProcessorProtocol,
            title: str = "Vector Search API",
            enable_file_logging: bool = False,
            log_level: str = "INFO",
            log_file: str = "vector_search_api.log"
    ):
        """
        Create the REST API around a query processor.

        Args:
            query_processor: Processor holding the named collections
            title: API title
            enable_file_logging: Also write logs to ``log_file``
            log_level: Root log level
            log_file: Path of the log file
        """
        self.query_processor = query_processor
        self.title = title
        self.enable_file_logging = enable_file_logging
        self.log_file = log_file

        self._setup_logging(log_level)
        self.logger = logging.getLogger("vector_search_api")

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self.logger.info("Vector Search API started")
            yield
            self.logger.info("Vector Search API stopped")

        self.app = FastAPI(
            title=self.title,
            version=__version__,
            lifespan=lifespan
        )

        self._setup_middleware()
        self._setup_routes()

    def _raise_http(self, action: str, namespace: str, e: Exception) -> NoReturn:
        if isinstance(e, CollectionNotFoundError):
            self.logger.warning(f"{action} failed - collection '{namespace}' not found")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        if isinstance(e, (ConfigurationError, ValueError)):
            self.logger.warning(f"{action} rejected - namespace: {namespace}, error: {e}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        self.logger.error(
            f"{action} failed - namespace: {namespace}, error: {str(e)}",
            exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{action} failed: {str(e)}"
        )

    def _setup_routes(self):
        """Register the API routes."""

        @self.app.get("/health", response_model=HealthCheckResponse)
        async def health_check():
            return HealthCheckResponse(
                status="healthy",
                version=__version__,
                timestamp=datetime.now().isoformat(),
                collections=len(self.query_processor.list_namespaces())
            )

        @self.app.get("/collections")
        async def list_collections():
            namespaces = self.query_processor.list_namespaces()
            self.logger.info(f"Found {len(namespaces)} collections: {namespaces}")
            return {"namespaces": namespaces}

        @self.app.post(
            "/collections/{namespace}",
            response_model=BuildCollectionResponse,
            status_code=status.HTTP_201_CREATED
        )
        def build_collection(namespace: str, request: BuildCollectionRequest):
            self.logger.info(
                f"Build request - namespace: {namespace}, vectors: {len(request.vectors)}, "
                f"type: {request.config.collection_type}, metric: {request.config.metric}"
            )
            start_time = time.time()
            try:
                vectors = [VectorDTO(values=v.values, metadata=v.metadata) for v in request.vectors]
                size = self.query_processor.build_collection(
                    namespace, vectors, request.config.model_dump()
                )
            except Exception as e:
                self._raise_http("Build", namespace, e)

            return BuildCollectionResponse(
                namespace=namespace,
                size=size,
                collection_type=request.config.collection_type,
                execution_time_ms=(time.time() - start_time) * 1000
            )

        @self.app.get("/collections/{namespace}", response_model=CollectionInfo)
        async def get_collection(namespace: str):
            try:
                return CollectionInfo(**self.query_processor.get_collection_info(namespace))
            except Exception as e:
                self._raise_http("Collection info", namespace, e)

        @self.app.delete("/collections/{namespace}")
        async def delete_collection(namespace: str):
            if not self.query_processor.delete_collection(namespace):
                self._raise_http("Delete", namespace, CollectionNotFoundError(namespace))
            return {"status": "success", "message": f"Collection '{namespace}' deleted"}

        @self.app.post("/collections/{namespace}/search/knn", response_model=SearchResponse)
        def knn_search(namespace: str, request: KNNSearchRequest):
            self.logger.debug(f"k-NN search - namespace: {namespace}, k: {request.k}")
            start_time = time.time()
            try:
                results = self.query_processor.find_nearest(
                    namespace, VectorDTO(values=request.vector, metadata={}), request.k
                )
            except Exception as e:
                self._raise_http("k-NN search", namespace, e)

            execution_time = (time.time() - start_time) * 1000
            self.logger.info(f"k-NN search in '{namespace}' returned {len(results)} results in {execution_time:.2f}ms")
            return SearchResponse(
                query_type="knn",
                results=_to_neighbors(results),
                total_results=len(results),
                execution_time_ms=execution_time
            )

        @self.app.post("/collections/{namespace}/search/range", response_model=SearchResponse)
        def range_search(namespace: str, request: RangeSearchRequest):
            self.logger.debug(f"Range search - namespace: {namespace}, radius: {request.radius}")
            start_time = time.time()
            try:
                results = self.query_processor.find_in_range(
                    namespace, VectorDTO(values=request.vector, metadata={}), request.radius
                )
            except Exception as e:
                self._raise_http("Range search", namespace, e)

            execution_time = (time.time() - start_time) * 1000
            self.logger.info(f"Range search in '{namespace}' returned {len(results)} results in {execution_time:.2f}ms")
            return SearchResponse(
                query_type="range",
                results=_to_neighbors(results),
                total_results=len(results),
                execution_time_ms=execution_time
            )

        @self.app.post("/collections/{namespace}/search/batch", response_model=BatchSearchResponse)
        def batch_search(namespace: str, request: BatchKNNSearchRequest):
            self.logger.info(
                f"Batch k-NN search - namespace: {namespace}, queries: {len(request.vectors)}, "
                f"k: {request.k}, parallel: {request.parallel}"
            )
            start_time = time.time()
            try:
                queries = [VectorDTO(values=v, metadata={}) for v in request.vectors]
                results = self.query_processor.batch_find_nearest(
                    namespace, queries, request.k, parallel=request.parallel
                )
            except Exception as e:
                self._raise_http("Batch search", namespace, e)

            return BatchSearchResponse(
                results=[_to_neighbors(r) for r in results],
                execution_time_ms=(time.time() - start_time) * 1000
            )

        @self.app.get("/statistics")
        async def statistics():
            return self.query_processor.get_statistics()

    def get_app(self) -> FastAPI:
        """Return the FastAPI application."""
        return self.app

    def _setup_logging(self, log_level: str):
        """Install one log format on the root logger."""

        class CustomFormatter(logging.Formatter):
            def format(self, record):
                record.asctime_formatted = self.formatTime(record, self.datefmt)
                return super().format(record)

        LOG_FORMAT = '%(asctime_formatted)s - %(name)s - %(levelname)s - %(message)s'
        DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        formatter = CustomFormatter(LOG_FORMAT, DATE_FORMAT)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        if self.enable_file_logging:
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    def _setup_middleware(self):
        """Log every request and its response time."""

        @self.app.middleware("http")
        async def log_requests(request: Request, call_next):
            start_time = time.time()
            self.logger.info(f"→ {request.method} {request.url.path}")

            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            self.logger.info(
                f"← {request.method} {request.url.path} - "
                f"status: {response.status_code} - time: {process_time:.2f}ms"
            )
            return response


if __name__ == "__main__":
    from ..implementations.query_processor import QueryProcessor

    api = RestAPI(
        query_processor=QueryProcessor(),
        title="MLVectorSearch API",
        log_level="INFO"
    )
    uvicorn.run(api.get_app(), host="127.0.0.1", port=8000, log_config=None)
