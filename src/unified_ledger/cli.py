import asyncio
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from unified_ledger.config.settings import AppSettings
from unified_ledger.database.connection import DatabaseConfig, DatabaseManager
from unified_ledger.domain.categories import UNCATEGORIZED
from unified_ledger.logging_setup import configure_logging
from unified_ledger.repositories.base import CategoryRepository
from unified_ledger.services.base import FinancialDataProvider
from unified_ledger.services.data_provider import build_data_provider
from unified_ledger.services.report_service import PreparedLedger, ReportService
from unified_ledger.storage.base import KeyValueStore
from unified_ledger.storage.sqlite_store import SQLiteKeyValueStore
from unified_ledger.sync.stream import FinanceStream, FinanceStreamEvent
from unified_ledger.sync.user_config import UserConfigStore

app = typer.Typer(
    name="unified-ledger",
    help="Reconcile and categorize bank, card and trading transactions",
    add_completion=False,
)
rules_app = typer.Typer(help="Manage keyword category rules")
override_app = typer.Typer(help="Pin a category on a single transaction")
connect_app = typer.Typer(help="Connect data sources")
app.add_typer(rules_app, name="rules")
app.add_typer(override_app, name="override")
app.add_typer(connect_app, name="connect")

console = Console()


class State:
    verbose: bool = False
    demo: bool = False
    settings: Optional[AppSettings] = None
    store: Optional[KeyValueStore] = None
    provider: Optional[FinancialDataProvider] = None


state = State()


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    demo: bool = typer.Option(
        False,
        "--demo",
        help="Use generated demo data and read-only demo categories",
    ),
):
    """
    Unified Ledger - combine, reconcile and categorize your finances.
    """
    if state.settings is None:
        state.settings = AppSettings.load()

    configure_logging(state.settings, verbose)

    if state.store is None and not demo:
        db_manager = DatabaseManager(DatabaseConfig.from_settings(state.settings))
        state.store = SQLiteKeyValueStore(db_manager)

    if state.provider is None:
        state.provider = build_data_provider(
            state.settings,
            state.store,
            demo_mode=demo,
            stream=FinanceStream(keepalive_seconds=state.settings.keepalive_seconds),
        )

    state.verbose = verbose
    state.demo = demo


def _fail(e: Exception):
    console.print(f"[bold red]Error:[/bold red] {e}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)


def _money(amount) -> str:
    color = "green" if amount > 0 else "red" if amount < 0 else "white"
    return f"[{color}]£{amount:,.2f}[/{color}]"


def _repository() -> CategoryRepository:
    return state.provider.category_repository


async def _load_ledger(report: ReportService) -> PreparedLedger:
    data = await state.provider.get_combined_data()
    ledger = await report.prepare(data.transactions)
    await state.provider.wait_for_refreshes()
    return ledger


@app.command(name="transactions")
def transactions(
    limit: int = typer.Option(
        25,
        "--limit", "-n",
        help="How many of the newest rows to show",
        min=1,
    ),
):
    """
    Show the combined ledger and total balance.

    Examples:
        unified-ledger transactions
        unified-ledger --demo transactions --limit 50
    """
    try:
        report = ReportService(_repository(), state.settings)

        async def run():
            data = await state.provider.get_combined_data()
            ledger = await report.prepare(data.transactions)
            await state.provider.wait_for_refreshes()
            return data, ledger

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading transactions...", total=None)
            data, ledger = asyncio.run(run())
            progress.update(task, completed=True)

        console.print(Panel.fit(
            f"[bold]Total balance:[/bold] {_money(data.total_balance)}\n"
            f"Transactions: {len(data.transactions)}"
            f" ({ledger.mirrored_removed} mirrored transfers hidden)\n"
            f"Mode: {'DEMO' if state.demo else 'LIVE'}",
            border_style="cyan",
        ))

        rows = report.rows(ledger)
        table = Table(show_header=True, padding=(0, 1))
        table.add_column("Date", style="cyan", width=12)
        table.add_column("Description", style="white", max_width=40)
        table.add_column("Category", style="dim", width=15)
        table.add_column("Source", width=12)
        table.add_column("Amount", justify="right", width=12)

        for row in rows[:limit]:
            desc = row.description[:37] + "..." if len(row.description) > 40 else row.description
            table.add_row(
                row.day_label,
                desc,
                row.transaction.category or UNCATEGORIZED,
                row.transaction.source.value,
                _money(row.amount),
            )

        console.print(table)
        if len(rows) > limit:
            console.print(f"\n[dim]Showing {limit} of {len(rows)} rows[/dim]")

    except Exception as e:
        _fail(e)


@app.command(name="sync")
def sync(
    wait: bool = typer.Option(
        True,
        "--wait/--no-wait",
        help="Wait for background refreshes and print their status",
    ),
    sse: bool = typer.Option(
        False,
        "--sse",
        help="Print every stream event as a server-sent-events frame",
    ),
):
    """
    Force every connected source to refresh on this read.

    Examples:
        unified-ledger sync
        unified-ledger sync --sse
    """
    try:
        if state.demo:
            console.print("[yellow]Demo data is generated on every read; nothing to sync[/yellow]")
            return

        async def run() -> List[FinanceStreamEvent]:
            await UserConfigStore(state.store).request_resync()
            subscription = state.provider.stream.subscribe()
            try:
                await state.provider.get_combined_data()
                if wait:
                    await state.provider.wait_for_refreshes()
            finally:
                subscription.close()
            return [event async for event in subscription]

        events = asyncio.run(run())

        if sse:
            for event in events:
                typer.echo(event.to_sse(), nl=False)
            return

        statuses = [event for event in events if event.type == "status"]
        if not statuses:
            console.print("[dim]No connected sources needed a refresh[/dim]")
        for event in statuses:
            state_name = event.payload.get("state")
            color = {"ready": "green", "error": "red"}.get(state_name, "yellow")
            line = f"[{color}]{event.payload.get('source')}: {state_name}[/{color}]"
            if event.payload.get("error"):
                line += f" - {event.payload['error']}"
            console.print(line)

    except Exception as e:
        _fail(e)


@app.command(name="categories")
def categories(
    offset: Optional[int] = typer.Option(
        None,
        "--offset", "-o",
        help="Month offset from the current month (0, -1, -2, ...)",
        max=0,
    ),
):
    """
    Spending per category for one month, net of reimbursements.

    Examples:
        unified-ledger categories
        unified-ledger categories --offset -1
    """
    try:
        report = ReportService(_repository(), state.settings)
        ledger = asyncio.run(_load_ledger(report))
        result = report.category_report(ledger, offset)

        console.print(f"\n[bold cyan]Spending by category: {result.label}[/bold cyan]")
        if not result.stats:
            console.print(Panel(
                "[yellow]No spending found for this month[/yellow]",
                title="Empty Report",
                border_style="yellow",
            ))
            return

        table = Table(show_header=True, box=None, padding=(0, 2))
        table.add_column("Category", style="cyan", no_wrap=True)
        table.add_column("Amount", justify="right", style="red")
        table.add_column("% of Total", justify="right", style="dim")
        table.add_column("Count", justify="right")

        for stat in result.stats:
            table.add_row(
                f"[{stat.color}]●[/{stat.color}] {stat.category_name}",
                f"£{stat.total_amount:,.2f}",
                f"{stat.percentage:.1f}%",
                str(stat.transaction_count),
            )

        console.print(table)
        console.print(f"\n[bold]Total:[/bold] £{result.total_spend:,.2f}")

    except Exception as e:
        _fail(e)


@app.command(name="activity")
def activity(
    mode: str = typer.Option(
        "month",
        "--mode", "-m",
        help="Period: month or week",
    ),
    offset: int = typer.Option(
        0,
        "--offset", "-o",
        help="Periods back from the current one",
        max=0,
    ),
):
    """
    Spending and income for a month or week.

    Examples:
        unified-ledger activity
        unified-ledger activity --mode week --offset -2
    """
    try:
        if mode not in ("month", "week"):
            raise typer.BadParameter("mode must be 'month' or 'week'")

        report = ReportService(_repository(), state.settings)
        ledger = asyncio.run(_load_ledger(report))
        result = report.activity_report(ledger, mode, offset)

        console.print(Panel(
            f"[red]💸 Spending:[/red] £{result.spending:>10,.2f}\n"
            f"[green]💰 Income:[/green]   £{result.income:>10,.2f}",
            title=f"[bold]{result.label}[/bold]",
            border_style="cyan",
            padding=(1, 2),
        ))

    except Exception as e:
        _fail(e)


@app.command(name="income")
def income():
    """
    Income over the last six months and this month's breakdown.
    """
    try:
        report = ReportService(_repository(), state.settings)
        ledger = asyncio.run(_load_ledger(report))
        result = report.income_report(ledger)

        table = Table(title="Monthly income", show_header=True, padding=(0, 2))
        table.add_column("Month", style="cyan")
        table.add_column("Income", justify="right", style="green")
        table.add_column("Change", justify="right")

        for month in result.series:
            arrow = "📈" if month.change >= 0 else "📉"
            table.add_row(month.month, f"£{month.income:,.2f}", f"{arrow} {month.change:+.1f}%")
        console.print(table)

        breakdown = result.breakdown
        console.print(Panel(
            f"Salary:            £{breakdown.salary:>10,.2f} ({len(breakdown.salary_txs)})\n"
            f"Interest/cashback: £{breakdown.interest_total:>10,.2f} ({breakdown.interest_count})\n"
            f"Other:             £{breakdown.other:>10,.2f} ({len(breakdown.other_txs)})",
            title="[bold]This month[/bold]",
            border_style="green",
        ))

    except Exception as e:
        _fail(e)


@rules_app.command(name="list")
def rules_list():
    """List category rules in matching order."""
    try:
        rules = asyncio.run(_repository().list_rules())
        if not rules:
            console.print("[dim]No rules yet. Add one with 'unified-ledger rules add'.[/dim]")
            return

        table = Table(show_header=True, padding=(0, 1))
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Keywords")
        for rule in rules:
            table.add_row(rule.id, rule.name, ", ".join(rule.keywords))
        console.print(table)

    except Exception as e:
        _fail(e)


@rules_app.command(name="add")
def rules_add(
    name: str = typer.Argument(..., help="Category name"),
    keywords: List[str] = typer.Argument(..., help="Keywords matched inside descriptions"),
    color: Optional[str] = typer.Option(None, "--color", help="Display color, e.g. #22c55e"),
    icon: Optional[str] = typer.Option(None, "--icon", help="Display icon, e.g. lucide:car"),
):
    """
    Create a keyword rule.

    Examples:
        unified-ledger rules add Groceries tesco sainsbury
    """
    try:
        rule = asyncio.run(_repository().create_rule(name, keywords, color, icon))
        console.print(f"[green]✓[/green] Created rule [bold]{rule.name}[/bold] ({rule.id})")
    except Exception as e:
        _fail(e)


@rules_app.command(name="update")
def rules_update(
    rule_id: str = typer.Argument(..., help="Rule ID"),
    name: Optional[str] = typer.Option(None, "--name"),
    keywords: Optional[List[str]] = typer.Option(None, "--keyword", "-k", help="Replace keywords (repeatable)"),
    color: Optional[str] = typer.Option(None, "--color"),
    icon: Optional[str] = typer.Option(None, "--icon"),
):
    """Update fields of an existing rule."""
    try:
        changes = {
            k: v for k, v in
            {"name": name, "keywords": keywords or None, "color": color, "icon": icon}.items()
            if v is not None
        }
        rule = asyncio.run(_repository().update_rule(rule_id, **changes))
        console.print(f"[green]✓[/green] Updated rule [bold]{rule.name}[/bold]")
    except Exception as e:
        _fail(e)


@rules_app.command(name="delete")
def rules_delete(rule_id: str = typer.Argument(..., help="Rule ID")):
    """Delete a rule."""
    try:
        if asyncio.run(_repository().delete_rule(rule_id)):
            console.print(f"[green]✓[/green] Deleted rule {rule_id}")
        else:
            console.print(f"[yellow]No rule with ID {rule_id}[/yellow]")
    except Exception as e:
        _fail(e)


@override_app.command(name="set")
def override_set(
    reference: str = typer.Argument(..., help="Transaction reference"),
    category: str = typer.Argument(..., help="Category to pin"),
):
    """Pin a category on one transaction, whatever the rules say."""
    try:
        asyncio.run(_repository().set_override(reference, category))
        console.print(f"[green]✓[/green] {reference} → {category}")
    except Exception as e:
        _fail(e)


@override_app.command(name="remove")
def override_remove(reference: str = typer.Argument(..., help="Transaction reference")):
    """Let the rules decide again for one transaction."""
    try:
        asyncio.run(_repository().remove_override(reference))
        console.print(f"[green]✓[/green] Removed override for {reference}")
    except Exception as e:
        _fail(e)


@connect_app.command(name="trading")
def connect_trading(
    key: str = typer.Option(..., "--key", prompt=True, help="Trading212 API key"),
    secret: str = typer.Option(..., "--secret", prompt=True, hide_input=True, help="Trading212 API secret"),
):
    """Store Trading212 API credentials."""
    try:
        if state.demo:
            raise RuntimeError("Cannot connect accounts in demo mode")
        asyncio.run(UserConfigStore(state.store).connect_trading(key, secret))
        console.print("[green]✓[/green] Trading212 connected")
    except Exception as e:
        _fail(e)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
