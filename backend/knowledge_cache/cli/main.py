"""CLI entrypoint for Knowledge Cache."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Optional

import requests
import typer

app = typer.Typer(name="kc", help="Knowledge Cache command-line interface")
kb_app = typer.Typer(name="kb", help="Manage knowledge bases")
app.add_typer(kb_app, name="kb")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("KC_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2, ensure_ascii=False))


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Interface to listen on"),
    port: int = typer.Option(5173, "--port", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("knowledge_cache.app:app", host=bind, port=port, reload=reload)


@app.command()
def ingest(
    document_id: int = typer.Argument(..., help="Document identifier"),
    path: Path = typer.Argument(..., help="UTF-8 text file to ingest"),
    title: Optional[str] = typer.Option(None, "--title", help="Label shown in source citations"),
    mode: Optional[str] = typer.Option(None, "--mode", help="Chunking mode: token, character or page"),
    size: int = typer.Option(500, "--size", help="Chunk size in tokens or characters"),
    overlap: int = typer.Option(50, "--overlap", help="Overlap between consecutive chunks"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Chunk, embed and store a document, replacing any earlier version."""
    body: dict[str, object] = {
        "document_id": document_id,
        "text": path.expanduser().read_text(encoding="utf-8"),
        "title": title or path.stem,
    }
    if mode:
        body["chunking"] = {"mode": mode, "size": size, "overlap": overlap}
    _echo(_request("POST", "/ingest", host=host, json=body))


@app.command()
def query(
    q: str = typer.Argument(..., help="Query text"),
    max_chunks: int = typer.Option(..., "--max-chunks", "-k", help="Maximum passages to return (1-20)"),
    threshold: float = typer.Option(..., "--threshold", "-t", help="Minimum cosine similarity (0-1)"),
    kb: Optional[List[str]] = typer.Option(None, "--kb", help="Restrict to a knowledge base; repeatable"),
    document: Optional[List[int]] = typer.Option(None, "--document", help="Restrict to a document; repeatable"),
    context: bool = typer.Option(False, "--context", help="Print only the rendered context block"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Retrieve passages relevant to a query."""
    payload: dict[str, object] = {"query": q, "max_chunks": max_chunks, "threshold": threshold}
    if kb:
        payload["knowledge_base_ids"] = kb
    if document:
        payload["document_ids"] = document
    resp = _request("POST", "/query", host=host, json=payload)
    if context:
        typer.echo(resp.json()["context_block"])
        return
    _echo(resp)


@app.command()
def stats(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show embedding store statistics."""
    _echo(_request("GET", "/stats", host=host))


@app.command()
def documents(
    limit: int = typer.Option(20, "--limit", help="Documents per page"),
    offset: int = typer.Option(0, "--offset", help="Documents to skip"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List stored documents, newest first."""
    _echo(_request("GET", "/documents", host=host, params={"limit": limit, "offset": offset}))


@app.command()
def delete(
    document_id: int = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a document and all of its chunks."""
    _echo(_request("DELETE", f"/documents/{document_id}", host=host))


@kb_app.command("list")
def list_knowledge_bases(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List knowledge bases."""
    _echo(_request("GET", "/knowledge-bases", host=host))


@kb_app.command("create")
def create_knowledge_base(
    name: str = typer.Argument(..., help="Knowledge base name"),
    description: str = typer.Option("", "--description", help="Free-form description"),
    model: Optional[str] = typer.Option(None, "--model", help="Embedding model the members were built with"),
    document: Optional[List[int]] = typer.Option(None, "--document", help="Initial member; repeatable"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a knowledge base."""
    payload = {
        "name": name,
        "description": description,
        "embedding_model": model,
        "document_ids": document or [],
    }
    _echo(_request("POST", "/knowledge-bases", host=host, json=payload))


@kb_app.command("show")
def show_knowledge_base(
    kb_id: str = typer.Argument(..., help="Knowledge base identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show a knowledge base and its members."""
    _echo(_request("GET", f"/knowledge-bases/{kb_id}", host=host))


@kb_app.command("stats")
def knowledge_base_stats(
    kb_id: str = typer.Argument(..., help="Knowledge base identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show chunk statistics for a knowledge base's documents."""
    _echo(_request("GET", f"/knowledge-bases/{kb_id}/stats", host=host))


@kb_app.command("add")
def add_document(
    kb_id: str = typer.Argument(..., help="Knowledge base identifier"),
    document_id: int = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Add a document to a knowledge base."""
    _echo(_request("POST", f"/knowledge-bases/{kb_id}/documents", host=host, json={"document_id": document_id}))


@kb_app.command("remove")
def remove_document(
    kb_id: str = typer.Argument(..., help="Knowledge base identifier"),
    document_id: int = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove a document from a knowledge base."""
    _echo(_request("DELETE", f"/knowledge-bases/{kb_id}/documents/{document_id}", host=host))


@kb_app.command("delete")
def delete_knowledge_base(
    kb_id: str = typer.Argument(..., help="Knowledge base identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a knowledge base; its documents are kept."""
    _echo(_request("DELETE", f"/knowledge-bases/{kb_id}", host=host))


if __name__ == "__main__":
    app()
