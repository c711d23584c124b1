from __future__ import annotations
import typer
import uvicorn

from .errors import StoreUnavailable
from .settings import api_settings

app = typer.Typer(add_completion=False, help="Dialysis record service")

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: int = typer.Option(None, help="Listen port (defaults to PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes")
):
    """Run the HTTP API."""
    uvicorn.run(
        "apps.api.main:app",
        host=host or api_settings.host,
        port=port or api_settings.port,
        reload=reload,
        log_level=api_settings.log_level.lower(),
    )

@app.command("init-db")
def init_db():
    """Connect to the document store and create the collection indexes."""
    from .main import create_storage

    storage = create_storage()
    try:
        storage.connect()
    except StoreUnavailable as e:
        typer.echo(f"✗ {e.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        storage.close()
    typer.echo(f"✓ Indexes ensured on database '{storage.db.name}'")

@app.command("check-db")
def check_db():
    """Exit non-zero when the document store does not answer a ping."""
    from .main import create_storage

    storage = create_storage()
    try:
        ok = storage.ping()
    finally:
        storage.close()
    typer.echo("connected" if ok else "disconnected")
    if not ok:
        raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
