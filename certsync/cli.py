"""CLI commands for certsync."""

import sys
import time
from pathlib import Path
from typing import Optional

import click

from certsync.bootstrap import configure_logging, create_sync_service
from certsync.exceptions import CertSyncError
from certsync.schemas import Category, Certificate, FileType, derive_status
from certsync.settings import get_settings

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".heic"}


def _service(start_scheduler: bool = False):
    service = create_sync_service(get_settings())
    service.initialize(start_scheduler=start_scheduler)
    return service


def _fail(message: str):
    click.echo(f"✗ {message}", err=True)
    sys.exit(1)


@click.group()
def cli():
    """certsync - local-first certificate store."""
    configure_logging(get_settings())


@cli.command()
def init():
    """Create the local store and encryption key."""
    settings = get_settings()
    try:
        service = _service()
    except CertSyncError as e:
        _fail(f"Error initializing store: {e}")
    click.echo(f"✓ Local store ready at {settings.database_url_computed}")
    click.echo("✓ Remote session established." if service.is_online else "  Running offline.")


@cli.command()
@click.option("--name", required=True)
@click.option("--serial", "serial_number", required=True)
@click.option("--category", type=click.Choice([c.value for c in Category]), required=True)
@click.option("--issue-date", type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@click.option("--expiry-date", type=click.DateTime(formats=["%Y-%m-%d"]), required=True)
@click.option("--file", "file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def add(name, serial_number, category, issue_date, expiry_date, file_path: Optional[Path]):
    """Add a certificate, optionally with its PDF or image file."""
    settings = get_settings()
    file_data = file_path.read_bytes() if file_path else None
    file_type = (
        FileType.IMAGE if file_path and file_path.suffix.lower() in IMAGE_SUFFIXES else FileType.PDF
    )
    cert = Certificate(
        name=name,
        serial_number=serial_number,
        category=Category(category),
        issue_date=issue_date.date(),
        expiry_date=expiry_date.date(),
        status=derive_status(expiry_date.date(), upcoming_window_days=settings.upcoming_window_days),
        file_type=file_type,
    )
    cert.file_path = f"/certificates/{cert.id}"

    service = _service()
    stored = service.upload_certificate(cert, file_data, background=False)
    click.echo(f"✓ Added certificate {stored.id}")


@cli.command(name="list")
@click.option("--category", type=click.Choice([c.value for c in Category]))
def list_certificates(category: Optional[str]):
    """List certificates ordered by expiry date."""
    settings = get_settings()
    service = _service()
    certificates = sorted(service.get_certificates(), key=lambda c: c.expiry_date)
    if category:
        certificates = [c for c in certificates if c.category.value == category]
    if not certificates:
        click.echo("No certificates.")
        return
    for cert in certificates:
        status = cert.current_status(upcoming_window_days=settings.upcoming_window_days)
        click.echo(
            f"{cert.id}  {cert.name:<40}  {cert.category.value:<9}  "
            f"{cert.expiry_date.isoformat()}  {status.value:<8}  {cert.sync_status.value}"
        )


@cli.command()
@click.argument("certificate_id")
def show(certificate_id: str):
    """Show one certificate."""
    service = _service()
    try:
        cert = service.store.get_certificate(certificate_id)
    except CertSyncError as e:
        _fail(f"Error reading certificate: {e}")
    if cert is None:
        _fail(f"Certificate {certificate_id} not found")
    for field, value in cert.model_dump(mode="json", exclude_none=True).items():
        click.echo(f"{field}: {value}")
    click.echo(f"has_file: {service.store.has_certificate_file(certificate_id)}")


@cli.command(name="export-file")
@click.argument("certificate_id")
@click.argument("output", type=click.Path(dir_okay=False, writable=True, path_type=Path))
def export_file(certificate_id: str, output: Path):
    """Write a certificate's decrypted file to OUTPUT."""
    service = _service()
    data = service.get_certificate_file(certificate_id)
    if data is None:
        _fail(f"No file available for certificate {certificate_id}")
    output.write_bytes(data)
    click.echo(f"✓ Wrote {len(data)} bytes to {output}")


@cli.command()
@click.argument("certificate_id")
def delete(certificate_id: str):
    """Delete a certificate locally and on the remote."""
    service = _service()
    service.delete_certificate(certificate_id)
    click.echo(f"✓ Deleted certificate {certificate_id}")


@cli.command()
def stats():
    """Count certificates by expiry status."""
    from certsync.state import CertificateStateCache

    settings = get_settings()
    cache = CertificateStateCache(create_sync_service(settings), settings.upcoming_window_days)
    cache.initialize(start_scheduler=False)
    for status, count in cache.get_statistics().items():
        click.echo(f"{status}: {count}")


@cli.command()
def sync():
    """Run one sync pass."""
    service = _service()
    if not service.is_online:
        _fail("Remote service unavailable; nothing synced")
    result = service.sync()
    if result is None:
        click.echo("Sync already in progress.")
        return
    click.echo(
        f"✓ Uploaded {result.uploaded}, downloaded {result.downloaded}, "
        f"skipped {result.skipped}, failed {result.upload_failures + result.download_failures}"
    )


@cli.command()
def watch():
    """Sync periodically until interrupted."""
    service = _service(start_scheduler=True)
    if not service.is_online:
        _fail("Remote service unavailable")
    service.trigger_sync()
    click.echo("Watching for changes (Ctrl-C to stop)...")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        service.shutdown()


if __name__ == "__main__":
    cli()
