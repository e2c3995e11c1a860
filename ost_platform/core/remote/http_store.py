from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ost_platform.core.errors import NotFoundError, OstError, TransportError, ValidationError
from ost_platform.core.model import Node, NodeDraft, NodePatch, Tree
from ost_platform.core.remote.contracts import (
    draft_to_dict,
    parse_node,
    parse_tree,
    patch_to_dict,
)

logger = logging.getLogger(__name__)


class HttpRemoteStore:
    """RemoteStore talking to the OST REST API (``/trees/{id}/nodes`` ...).

    No retries: every failure is mapped to an OstError and raised to the caller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self._base_url, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpRemoteStore:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def create_tree(self, title: str, description: Optional[str] = None) -> Tree:
        body = await self._request("POST", "/trees", json={"title": title, "description": description})
        return self._parse(parse_tree, body, "tree")

    async def list_trees(self) -> list[Tree]:
        body = await self._request("GET", "/trees")
        raw = body.get("trees")
        if not isinstance(raw, list):
            raise TransportError(code="E_BAD_RESPONSE", message="response has no trees list", path="trees")
        return [self._parse(parse_tree, {"tree": t}, "tree") for t in raw]

    async def update_tree(
        self, tree_id: str, *, title: Optional[str] = None, description: Optional[str] = None
    ) -> Tree:
        payload = {k: v for k, v in {"title": title, "description": description}.items() if v is not None}
        body = await self._request("PATCH", f"/trees/{tree_id}", json=payload)
        return self._parse(parse_tree, body, "tree")

    async def delete_tree(self, tree_id: str) -> str:
        body = await self._request("DELETE", f"/trees/{tree_id}")
        deleted = body.get("id")
        return deleted if isinstance(deleted, str) else tree_id

    async def get_tree_with_nodes(self, tree_id: str) -> tuple[Tree, list[Node]]:
        body = await self._request("GET", f"/trees/{tree_id}/full")
        tree = self._parse(parse_tree, body, "tree")
        raw_nodes = body["tree"].get("nodes") or []
        nodes = [self._parse(parse_node, {"node": n}, "node") for n in raw_nodes]
        return tree, nodes

    async def create_node(self, tree_id: str, draft: NodeDraft) -> Node:
        payload = {k: v for k, v in draft_to_dict(tree_id, draft).items() if v is not None}
        body = await self._request("POST", f"/trees/{tree_id}/nodes", json=payload)
        return self._parse(parse_node, body, "node")

    async def update_node(self, tree_id: str, node_id: str, patch: NodePatch) -> Node:
        body = await self._request(
            "PATCH", f"/trees/{tree_id}/nodes/{node_id}", json=patch_to_dict(patch)
        )
        return self._parse(parse_node, body, "node")

    async def delete_node(self, tree_id: str, node_id: str) -> str:
        body = await self._request("DELETE", f"/trees/{tree_id}/nodes/{node_id}")
        deleted = body.get("id")
        return deleted if isinstance(deleted, str) else node_id

    async def _request(self, method: str, url: str, json: Any = None) -> dict[str, Any]:
        logger.debug("%s %s", method, url)
        try:
            resp = await self._client.request(method, url, json=json)
        except httpx.HTTPError as e:
            raise TransportError(code="E_TRANSPORT", message=f"{method} {url} failed: {e}", path=url) from e

        if resp.status_code >= 400:
            raise _error_for(resp, method, url)

        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(code="E_BAD_RESPONSE", message="response is not JSON", path=url) from e
        if not isinstance(body, dict):
            raise TransportError(code="E_BAD_RESPONSE", message="response must be an object", path=url)
        return body

    @staticmethod
    def _parse(fn: Any, body: dict[str, Any], key: str) -> Any:
        try:
            return fn(body.get(key))
        except (TypeError, ValueError) as e:
            raise TransportError(code="E_BAD_RESPONSE", message=f"invalid {key} in response: {e}", path=key) from e


def _error_for(resp: httpx.Response, method: str, url: str) -> OstError:
    message = f"{method} {url} returned {resp.status_code}"
    try:
        payload = resp.json()
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            message = str(payload["error"].get("message") or message)
    except ValueError:
        pass

    if resp.status_code == 404:
        return NotFoundError(code="E_NOT_FOUND", message=message, path=url)
    if resp.status_code in (400, 422):
        return ValidationError(code="E_REMOTE_VALIDATION", message=message, path=url)
    return TransportError(code="E_TRANSPORT", message=message, path=url)
