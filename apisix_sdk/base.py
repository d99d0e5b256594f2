"""
Request orchestration for the APISIX Admin and Control APIs

Every SDK operation passes through ApisixClient.execute, which routes the call
to the right surface, serves reads from the response cache, records target
usage, retries transient failures and translates what is left into domain
errors.
"""
import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
import yaml
from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.exceptions import ApisixSDKError, ConfigurationError, ValidationError
from core.logging import get_logger

from .cache import ResponseCache
from .connections import ConnectionRegistry
from .exceptions import (
    ApisixAPIError,
    GatewayError,
    RequestCancelledError,
    RequestFailedError,
    classify_failure,
    is_not_found,
)
from .metrics import GatewayMetrics
from .normalizer import DEFAULT_PAGE_SIZE, ResponseNormalizer
from .retry import RetryConfig, RetryExecutor
from .types import (
    ADMIN_PREFIX,
    BatchItemResult,
    BatchOperation,
    BatchResult,
    ImportFailure,
    ImportResult,
    ImportStrategy,
    PaginatedResult,
    RequestDescriptor,
    SDKConfig,
    Surface,
    VersionConfig,
)
from .version import VersionNegotiator, compare_versions, parse_server_header

CONTROL_PREFIX = "/v1/"
CONTROL_FRAGMENTS = ("/healthcheck", "/server_info", "/discovery")
PAGINATION_PARAMS = ("page", "page_size")


def is_absolute_url(endpoint: str) -> bool:
    return endpoint.startswith(("http://", "https://"))


def route_decision(endpoint: str) -> Surface:
    """
    Decide which surface serves an endpoint

    Control when the endpoint is an absolute URL, or when it is not under the
    Admin prefix and either starts with /v1/ or names a control-only path.
    """
    if is_absolute_url(endpoint):
        return Surface.CONTROL
    if endpoint.startswith(ADMIN_PREFIX):
        return Surface.ADMIN
    if endpoint.startswith(CONTROL_PREFIX) or any(fragment in endpoint for fragment in CONTROL_FRAGMENTS):
        return Surface.CONTROL
    return Surface.ADMIN


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    clean = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        clean[key] = value
    return clean


def _structured_error(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("error_msg"):
        return str(payload["error_msg"])
    return None


def _as_batch_operation(op: Union[BatchOperation, Dict[str, Any]]) -> BatchOperation:
    if isinstance(op, BatchOperation):
        return op
    if not isinstance(op, dict):
        raise ValidationError(f"Batch operation must be a mapping, got {type(op).__name__}", field="operations")
    try:
        return BatchOperation(**op)
    except TypeError as e:
        raise ValidationError(f"Invalid batch operation {op!r}: {e}", field="operations") from e


class ApisixClient:
    """Orchestrates every request made to APISIX"""

    def __init__(
        self,
        config: Union[SDKConfig, Dict[str, Any], None] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock=time.monotonic,
        sleep=asyncio.sleep,
    ):
        try:
            if config is None:
                config = SDKConfig.from_settings(get_settings())
            elif isinstance(config, dict):
                config = SDKConfig.model_validate(config)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid APISIX client configuration: {e}") from e

        self.config = config
        self.admin_config = config.admin_api
        self.control_config = config.control
        self.logger = get_logger("apisix.client", domain="apisix")

        # Per-instance state, never shared between clients
        self.cache = ResponseCache(ttl=config.cache_ttl, clock=clock)
        self.connections = ConnectionRegistry(
            max_connections=config.max_connections,
            ttl=config.connection_ttl,
            clock=clock,
        )
        self.retry = RetryExecutor(
            RetryConfig(
                max_attempts=config.max_retries,
                base_delay=config.retry_delay,
                max_delay=config.retry_max_delay,
                jitter=config.retry_jitter,
            ),
            sleep=sleep,
        )
        self.normalizer = ResponseNormalizer()
        self.metrics = GatewayMetrics()
        self.metrics.set_info(admin_url=self.admin_config.base_url, control_url=self.control_config.base_url)
        self.version = VersionNegotiator(self._fetch_server_info, self._probe_admin_root)

        # One pooled transport per surface so timeouts can differ
        self._clients = {
            Surface.ADMIN: httpx.AsyncClient(
                timeout=httpx.Timeout(self.admin_config.timeout / 1000),
                transport=transport,
            ),
            Surface.CONTROL: httpx.AsyncClient(
                timeout=httpx.Timeout(self.control_config.timeout / 1000),
                transport=transport,
            ),
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()

    # Endpoints and routing

    @staticmethod
    def admin_endpoint(path: str) -> str:
        return f"{ADMIN_PREFIX}{path}"

    @staticmethod
    def control_endpoint(path: str) -> str:
        return path

    route_decision = staticmethod(route_decision)

    def resolve_url(self, endpoint: str, surface: Surface) -> str:
        if is_absolute_url(endpoint):
            return endpoint
        base = self.admin_config.base_url if surface == Surface.ADMIN else self.control_config.base_url
        return f"{base}{endpoint}"

    def build_headers(self, surface: Surface, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Base headers, then the API key (Admin only), then per-call headers"""
        surface_config = self.admin_config if surface == Surface.ADMIN else self.control_config
        headers = {"Content-Type": "application/json", **surface_config.headers}
        if surface == Surface.ADMIN and self.admin_config.api_key:
            headers["X-API-KEY"] = self.admin_config.api_key
        if extra:
            headers.update(extra)
        return headers

    # Core pipeline

    async def execute(self, descriptor: RequestDescriptor) -> Any:
        """
        Run one request through cache, connection registry and retry

        Args:
            descriptor: The request to perform

        Returns:
            The decoded response body (JSON value, text, or None when empty)

        Raises:
            ApisixAPIError: The server answered with an error_msg body
            RequestFailedError: Any other failure, after retries
            RequestCancelledError: The cancellation token fired
        """
        method = (descriptor.method or "GET").upper()
        endpoint = descriptor.endpoint
        surface = route_decision(endpoint)
        url = self.resolve_url(endpoint, surface)
        params = _clean_params(descriptor.params)

        cache_key = None
        if descriptor.is_read:
            cache_key = self.cache.generate_key(method, endpoint, params)
            if not descriptor.skip_cache:
                cached = self.cache.lookup(cache_key)
                if cached is not None:
                    self.metrics.record_cache_hit(surface.value)
                    self.logger.debug(f"Cache hit for {method} {endpoint}")
                    return cached
                self.metrics.record_cache_miss(surface.value)

        self.connections.touch(url, surface)
        self.metrics.update_tracked_connections(surface.value, self.connections.stats()[surface.value])
        headers = self.build_headers(surface, descriptor.headers)

        async def attempt() -> Any:
            result = await self._send(method, url, surface, headers, params, descriptor)
            if cache_key is not None and result is not None:
                self.cache.store(cache_key, result)
            return result

        try:
            return await self.retry.run(attempt, on_retry=lambda *_: self.metrics.record_retry(surface.value))
        except Exception as e:
            error = self._translate_error(e, method, endpoint, url)
            # Callers decide whether a failure is an error, e.g. exists() expects 404s
            level = logging.DEBUG if is_not_found(error) else logging.WARNING
            self.logger.log(level, f"{method} {endpoint} failed: {error}")
            if error is e:
                raise
            raise error from e

    async def _send(
        self,
        method: str,
        url: str,
        surface: Surface,
        headers: Dict[str, str],
        params: Dict[str, Any],
        descriptor: RequestDescriptor,
    ) -> Any:
        kwargs: Dict[str, Any] = {"headers": headers}
        if params:
            kwargs["params"] = params
        if descriptor.body is not None:
            if isinstance(descriptor.body, (str, bytes)):
                kwargs["content"] = descriptor.body
            else:
                kwargs["json"] = descriptor.body

        start_time = time.perf_counter()
        status_code = 0
        try:
            call = self._clients[surface].request(method, url, **kwargs)
            if descriptor.cancel_token is None:
                response = await call
            else:
                response = await self._race_cancellation(call, method, descriptor)

            status_code = response.status_code
            response.raise_for_status()

            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text
        finally:
            self.metrics.record_api_call(surface.value, method, status_code, time.perf_counter() - start_time)

    async def _race_cancellation(self, call, method: str, descriptor: RequestDescriptor) -> httpx.Response:
        token = descriptor.cancel_token
        if token.is_set():
            call.close()
            raise RequestCancelledError(method, descriptor.endpoint)

        request_task = asyncio.ensure_future(call)
        cancel_task = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not request_task.done():
                request_task.cancel()

        if request_task in done:
            return request_task.result()
        raise RequestCancelledError(method, descriptor.endpoint)

    def _translate_error(self, error: Exception, method: str, endpoint: str, url: str) -> GatewayError:
        if isinstance(error, GatewayError):
            return error

        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            error_msg = _structured_error(response)
            if error_msg:
                return ApisixAPIError(method, endpoint, error_msg, status_code=response.status_code)
            reason = f"HTTP {response.status_code} {response.reason_phrase}".strip()
            body = response.text.strip() if response.content else ""
            if body:
                reason = f"{reason}: {body[:200]}"
            return RequestFailedError(
                method, endpoint, url, reason, kind=classify_failure(error), status_code=response.status_code
            )

        reason = str(error) or error.__class__.__name__
        return RequestFailedError(method, endpoint, url, reason, kind=classify_failure(error))

    # Verb helpers

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        body: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        skip_cache: bool = False,
        cancel_token: Optional[asyncio.Event] = None,
    ) -> Any:
        return await self.execute(
            RequestDescriptor(
                endpoint=endpoint,
                method=method,
                body=body,
                params=params,
                headers=headers,
                skip_cache=skip_cache,
                cancel_token=cancel_token,
            )
        )

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request(endpoint, "GET", params=params, **kwargs)

    async def post(self, endpoint: str, body: Optional[Any] = None, **kwargs) -> Any:
        return await self.request(endpoint, "POST", body=body, **kwargs)

    async def put(self, endpoint: str, body: Optional[Any] = None, **kwargs) -> Any:
        return await self.request(endpoint, "PUT", body=body, **kwargs)

    async def patch(self, endpoint: str, body: Optional[Any] = None, **kwargs) -> Any:
        return await self.request(endpoint, "PATCH", body=body, **kwargs)

    async def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request(endpoint, "DELETE", params=params, **kwargs)

    # Resource-shaped helpers

    async def list(self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """List envelope; pagination params are dropped for servers that lack pagination"""
        params = dict(params or {})
        if any(name in params for name in PAGINATION_PARAMS):
            features = await self.get_api_version_config()
            if not features.supports_pagination:
                for name in PAGINATION_PARAMS:
                    params.pop(name, None)
        return await self.get(endpoint, params or None, **kwargs)

    async def list_paginated(
        self,
        endpoint: str,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        filters: Optional[Dict[str, Any]] = None,
    ) -> PaginatedResult:
        """
        One page of a listing, negotiated against the server version

        Servers without pagination are asked for the full list, which is then
        sliced client-side.
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive", page=page, page_size=page_size)

        features = await self.get_api_version_config()
        if features.supports_pagination:
            envelope = await self.get(endpoint, {**(filters or {}), "page": page, "page_size": page_size})
            canonical = self.normalizer.normalize_list(envelope, page_size)
            return PaginatedResult(
                items=canonical.items,
                page=page,
                page_size=page_size,
                total=canonical.total,
                has_more=canonical.has_more,
            )

        envelope = await self.get(endpoint, filters or None)
        return self.normalizer.paginate_locally(self.normalizer.extract_list(envelope), page, page_size)

    async def get_one(self, endpoint: str, id: str, **kwargs) -> Any:
        return await self.get(f"{endpoint}/{id}", **kwargs)

    async def create(self, endpoint: str, data: Dict[str, Any], id: Optional[str] = None) -> Any:
        if id:
            return await self.put(f"{endpoint}/{id}", data)
        return await self.post(endpoint, data)

    async def update(self, endpoint: str, id: str, data: Dict[str, Any]) -> Any:
        return await self.put(f"{endpoint}/{id}", data)

    async def partial_update(self, endpoint: str, id: str, data: Dict[str, Any]) -> Any:
        return await self.patch(f"{endpoint}/{id}", data)

    async def remove(self, endpoint: str, id: str) -> Any:
        return await self.delete(f"{endpoint}/{id}")

    async def remove_with_query(self, endpoint: str, id: str, query: Optional[Dict[str, Any]] = None) -> Any:
        return await self.delete(f"{endpoint}/{id}", params=query)

    async def check_exists(self, endpoint: str, id: str) -> bool:
        """get_one collapsed to a boolean; only not-found means False"""
        try:
            await self.get_one(endpoint, id, skip_cache=True)
            return True
        except GatewayError as e:
            if is_not_found(e):
                return False
            raise

    # Normalization

    def extract_value(self, envelope: Any) -> Any:
        return self.normalizer.extract_value(envelope)

    def extract_list(self, envelope: Any) -> List[Any]:
        return self.normalizer.extract_list(envelope)

    def extract_pagination(self, envelope: Any, page_size: Optional[int] = None) -> Dict[str, Any]:
        return self.normalizer.extract_pagination(envelope, page_size)

    # Version negotiation

    async def _fetch_server_info(self) -> Dict[str, Any]:
        return await self.get(self.control_endpoint("/v1/server_info"), skip_cache=True)

    async def _probe_admin_root(self) -> Optional[str]:
        # Deliberately without the API key
        response = await self._clients[Surface.ADMIN].request(
            "HEAD", f"{self.admin_config.base_url}/", headers=self.admin_config.headers
        )
        return parse_server_header(response.headers.get("server"))

    async def get_server_info(self) -> Dict[str, Any]:
        return await self.version.get_server_info()

    async def get_version(self) -> str:
        return await self.version.get_version()

    async def is_version_compatible(self, min_version: str) -> bool:
        return await self.version.is_at_least(min_version)

    async def is_version_3_or_later(self) -> bool:
        return await self.version.is_version_3_or_later()

    async def get_api_version_config(self) -> VersionConfig:
        return await self.version.feature_matrix()

    compare_versions = staticmethod(compare_versions)

    # Cache and registry introspection

    def invalidate_cache(self, endpoint: str) -> int:
        """Drop every cached read whose key mentions the endpoint"""
        return self.cache.invalidate_matching(endpoint)

    def clear_cache(self) -> int:
        return self.cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def connection_stats(self) -> Dict[str, int]:
        return self.connections.stats()

    # Bulk operations

    async def batch(
        self,
        endpoint: str,
        operations: Sequence[Union[BatchOperation, Dict[str, Any]]],
        continue_on_error: bool = False,
    ) -> BatchResult:
        """
        Execute create/update/delete operations one by one

        Each operation commits independently. Unless continue_on_error is set
        the batch stops after the first failure.
        """
        ops = [_as_batch_operation(op) for op in operations]
        result = BatchResult(total=len(ops))

        try:
            for op in ops:
                try:
                    data = await self._run_batch_operation(endpoint, op)
                    result.results.append(BatchItemResult(success=True, id=op.id, data=data))
                    result.successful += 1
                except ApisixSDKError as e:
                    result.results.append(BatchItemResult(success=False, id=op.id, error=str(e)))
                    result.failed += 1
                    if not continue_on_error:
                        break
        finally:
            self.invalidate_cache(endpoint)

        self.logger.info(f"Batch on {endpoint}: {result.successful} succeeded, {result.failed} failed")
        return result

    async def _run_batch_operation(self, endpoint: str, op: BatchOperation) -> Any:
        if op.operation == "create":
            if not op.data:
                raise ValidationError("Data is required for create operation", field="data")
            return self.extract_value(await self.create(endpoint, op.data, op.id))
        if op.operation == "update":
            if not op.id or not op.data:
                raise ValidationError("ID and data are required for update operation")
            return self.extract_value(await self.update(endpoint, op.id, op.data))
        if op.operation == "delete":
            if not op.id:
                raise ValidationError("ID is required for delete operation", field="id")
            await self.remove(endpoint, op.id)
            return {"success": True}
        raise ValidationError(f"Unsupported operation: {op.operation}", field="operation")

    async def import_data(
        self,
        endpoint: str,
        data: Union[List[Dict[str, Any]], str],
        strategy: Union[ImportStrategy, str] = ImportStrategy.MERGE,
        validate: bool = False,
        dry_run: bool = False,
    ) -> ImportResult:
        """
        Import resources from a list or a JSON string

        Existing ids are updated (merge), left alone (skip_existing) or
        overwritten without a lookup (replace). Per-item failures are
        collected in the result.
        """
        if isinstance(data, str):
            try:
                items = json.loads(data)
            except ValueError as e:
                raise ValidationError("Invalid JSON data provided") from e
        else:
            items = list(data)
        if not isinstance(items, list):
            raise ValidationError("Import data must be a list of resources")

        strategy = ImportStrategy(strategy)
        result = ImportResult(total=len(items))

        for item in items:
            item_id = str(item["id"]) if isinstance(item, dict) and "id" in item else None
            try:
                if validate:
                    self._validate_item(item)
                if dry_run:
                    continue

                if item_id and strategy != ImportStrategy.REPLACE and await self.check_exists(endpoint, item_id):
                    if strategy == ImportStrategy.SKIP_EXISTING:
                        result.skipped += 1
                        continue
                    await self.update(endpoint, item_id, item)
                    result.updated += 1
                    continue

                await self.create(endpoint, item, item_id)
                result.created += 1
            except ApisixSDKError as e:
                result.errors.append(ImportFailure(error=str(e), id=item_id))

        if not dry_run:
            self.invalidate_cache(endpoint)
        return result

    @staticmethod
    def _validate_item(item: Any) -> None:
        if not item or not isinstance(item, dict):
            raise ValidationError("Invalid data format")

    async def export_data(
        self,
        endpoint: str,
        format: str = "json",
        include: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
        pretty: bool = False,
    ) -> str:
        """Serialize a full listing as JSON or YAML, optionally filtering fields"""
        if format not in ("json", "yaml"):
            raise ValidationError(f"Unsupported export format: {format}", field="format")

        items = self.extract_list(await self.list(endpoint))
        if include:
            items = [{k: item[k] for k in include if k in item} for item in items]
        elif exclude:
            items = [{k: v for k, v in item.items() if k not in exclude} for item in items]

        if format == "json":
            return json.dumps(items, indent=2 if pretty else None)
        return yaml.safe_dump(items, sort_keys=False, default_flow_style=False)
