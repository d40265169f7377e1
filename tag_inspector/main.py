"""
Tag Inspector CLI - AWS Tag Compliance Scanner

Main entry point for the command-line interface.
"""

import sys
from typing import List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .core.aws_client import AWSClient
from .core.exceptions import (
    AWSClientError,
    CredentialsError,
    PolicyError,
    TagInspectorError,
)
from .core.logging import get_logger, setup_logging
from .core.orchestrator import DEFAULT_SERVICE_WORKERS, CancellationToken, ScanOrchestrator
from .core.policy_loader import dump_policy, load_policy_file
from .core.registry import DEFAULT_REGISTRY
from .reporters.cli_reporter import CLIReporter
from .reporters.json_reporter import JSONReporter

console = Console()
logger = get_logger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def validate_regions(ctx, param, value: Optional[str]) -> Optional[List[str]]:
    """Validate and parse comma-separated region list."""
    if value is None:
        return None
    regions = [r.strip() for r in value.split(",") if r.strip()]
    if not regions:
        raise click.BadParameter("No valid regions specified")
    return regions


def aws_options(func):
    """Credential, region and transport options shared by AWS commands."""
    options = [
        click.option(
            "--region",
            "-r",
            default="us-east-1",
            show_default=True,
            help="AWS region for the client (and regional services)",
        ),
        click.option(
            "--profile",
            "-p",
            default=None,
            help="AWS profile name from ~/.aws/credentials",
        ),
        click.option("--access-key-id", default=None, help="Static AWS access key id"),
        click.option("--secret-access-key", default=None, help="Static AWS secret access key"),
        click.option("--session-token", default=None, help="Session token for static credentials"),
        click.option(
            "--endpoint-url",
            default=None,
            help="Endpoint override for every AWS client (e.g. LocalStack)",
        ),
        click.option(
            "--max-retries",
            default=3,
            show_default=True,
            type=click.IntRange(min=1),
            help="Maximum attempts per AWS call",
        ),
        click.option(
            "--timeout",
            default=30,
            show_default=True,
            type=click.IntRange(min=1),
            help="Connect/read timeout in seconds",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_client(
    region: str,
    profile: Optional[str],
    access_key_id: Optional[str],
    secret_access_key: Optional[str],
    session_token: Optional[str],
    endpoint_url: Optional[str],
    max_retries: int,
    timeout: int,
) -> AWSClient:
    return AWSClient(
        region=region,
        profile=profile,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=session_token,
        endpoint_url=endpoint_url,
        max_retries=max_retries,
        timeout=timeout,
    )


@click.group()
@click.version_option(version=__version__, prog_name="tag-inspector")
def cli():
    """
    Tag Inspector: AWS Tag Compliance Scanner

    Checks the tags of AWS resources (S3 buckets, EC2 instances) against a
    YAML policy of required, forbidden and exact-value tags, compliance
    levels, allowed values and value patterns.
    """
    pass


@cli.command("scan")
@click.argument("policy_file", type=click.Path(dir_okay=False))
@aws_options
@click.option(
    "--regions",
    callback=validate_regions,
    help="Comma-separated regions for regional services (e.g., us-east-1,eu-west-1)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="List and filter resources without fetching tags",
)
@click.option(
    "--output",
    "-o",
    default=None,
    help="Write the JSON report to this file",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["cli", "json"]),
    default="cli",
    help="Output format (default: cli)",
)
@click.option(
    "--show-compliant",
    is_flag=True,
    help="List compliant resources in the terminal report too",
)
@click.option(
    "--collect-metadata",
    is_flag=True,
    help="Collect extra resource metadata (slower)",
)
@click.option(
    "--max-service-workers",
    default=DEFAULT_SERVICE_WORKERS,
    show_default=True,
    type=click.IntRange(min=1),
    help="Services scanned in parallel",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
)
@click.option("--log-file", default=None, help="Also write logs to this file")
def scan(
    policy_file: str,
    region: str,
    profile: Optional[str],
    access_key_id: Optional[str],
    secret_access_key: Optional[str],
    session_token: Optional[str],
    endpoint_url: Optional[str],
    max_retries: int,
    timeout: int,
    regions: Optional[List[str]],
    dry_run: bool,
    output: Optional[str],
    output_format: str,
    show_compliant: bool,
    collect_metadata: bool,
    max_service_workers: int,
    log_level: str,
    log_file: Optional[str],
):
    """
    Scan AWS resources against a tag policy.

    Exits 0 when the scan completes, even if resources are non-compliant;
    exits 1 when the policy cannot be loaded, credentials fail or a service
    cannot be listed.

    Examples:

        # Scan with the default credential chain
        tag-inspector scan policy.yaml

        # Scan EC2 in two regions with a profile
        tag-inspector scan policy.yaml --regions us-east-1,eu-west-1 --profile prod

        # Check listing permissions only
        tag-inspector scan policy.yaml --dry-run

        # JSON report to stdout, or to a file
        tag-inspector scan policy.yaml --format json
        tag-inspector scan policy.yaml --format json -o report.json

        # Against LocalStack
        tag-inspector scan policy.yaml --endpoint-url http://localhost:4566 \\
            --access-key-id test --secret-access-key test
    """
    setup_logging(level=log_level, log_file=log_file)
    cli_reporter = CLIReporter(console, show_compliant=show_compliant)
    cancel_token = CancellationToken()

    try:
        try:
            policy = load_policy_file(policy_file)
        except PolicyError as e:
            console.print(f"\n[red bold]Policy Error:[/red bold] {escape(str(e))}")
            sys.exit(1)

        try:
            client = _build_client(
                region, profile, access_key_id, secret_access_key,
                session_token, endpoint_url, max_retries, timeout,
            )
            client.validate_credentials()
        except AWSClientError as e:
            console.print(f"\n[red bold]Authentication Error:[/red bold] {escape(str(e))}")
            sys.exit(1)

        orchestrator = ScanOrchestrator(
            policy,
            client,
            dry_run=dry_run,
            cancel_token=cancel_token,
            regions=regions,
            max_service_workers=max_service_workers,
            collect_metadata=collect_metadata,
        )

        if output_format == "cli":
            cli_reporter.print_scanning_message(
                policy.enabled_resource_types(), orchestrator.regions
            )
            with cli_reporter.create_progress() as progress:
                progress.add_task("Scanning resources...", total=None)
                report = orchestrator.scan()
        else:
            report = orchestrator.scan()

        output_file = None
        if output:
            output_file = JSONReporter(output_path=output).report(report)

        if output_format == "json" and not output:
            click.echo(JSONReporter().to_string(report))
        elif output_format == "cli":
            cli_reporter.report(report)
            cli_reporter.print_completion_message(output_file)

        if report.is_fatal:
            sys.exit(1)

    except CredentialsError as e:
        console.print(f"\n[red bold]Authentication Error:[/red bold] {escape(str(e))}")
        sys.exit(1)
    except TagInspectorError as e:
        console.print(f"\n[red bold]Error:[/red bold] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        cancel_token.cancel()
        console.print("\n[yellow]Scan cancelled by user.[/yellow]")
        sys.exit(130)


@cli.command("validate-config")
@click.argument("policy_file", type=click.Path(dir_okay=False))
@click.option(
    "--dump",
    is_flag=True,
    help="Print the normalized policy as YAML",
)
def validate_config(policy_file: str, dump: bool):
    """
    Load and validate a policy file without touching AWS.

    Examples:

        tag-inspector validate-config policy.yaml

        tag-inspector validate-config policy.yaml --dump
    """
    try:
        policy = load_policy_file(policy_file)
    except PolicyError as e:
        console.print(f"\n[red bold]Invalid Policy:[/red bold] {escape(str(e))}")
        sys.exit(1)

    if dump:
        click.echo(dump_policy(policy), nl=False)
        return

    console.print("\n[green bold]Policy is valid![/green bold]\n")
    CLIReporter(console).print_policy_summary(policy)

    unknown = [key for key in policy.enabled_resource_types() if key not in DEFAULT_REGISTRY]
    if unknown:
        console.print(
            f"\n[yellow bold]Warning:[/yellow bold] no scanner for: {', '.join(unknown)}"
        )


@cli.command("services")
def list_services():
    """List the services that can be scanned."""
    table = Table(title="\nSupported Services", title_style="bold")
    table.add_column("Key", style="cyan")
    table.add_column("AWS Service")
    table.add_column("Scanner")
    table.add_column("Scope", style="dim")

    for descriptor in DEFAULT_REGISTRY.descriptors():
        table.add_row(
            descriptor.kind.value,
            descriptor.service_name,
            descriptor.scanner_class.__name__,
            "regional" if descriptor.regional else "global",
        )

    console.print(table)
    console.print()


@cli.command("validate")
@aws_options
def validate_credentials(
    region: str,
    profile: Optional[str],
    access_key_id: Optional[str],
    secret_access_key: Optional[str],
    session_token: Optional[str],
    endpoint_url: Optional[str],
    max_retries: int,
    timeout: int,
):
    """Validate AWS credentials and show account info."""
    try:
        client = _build_client(
            region, profile, access_key_id, secret_access_key,
            session_token, endpoint_url, max_retries, timeout,
        )
        client.validate_credentials()
        account_id = client.get_account_id()

        console.print("\n[green bold]AWS credentials are valid![/green bold]")
        console.print(f"\n  Account ID: {account_id}")
        console.print(f"  Region: {region}")
        console.print(f"  Credentials: {client.credential_source}")
        if profile:
            console.print(f"  Profile: {profile}")
        console.print()

    except AWSClientError as e:
        console.print(f"\n[red bold]Validation Failed:[/red bold] {escape(str(e))}")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
