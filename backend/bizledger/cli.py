# Overview: Flask CLI commands for demo data, manual sync and snapshot inspection.

# backend/bizledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask accounting seed-demo --tenant <id>
#   Insert a demo profile, a few POS sales, invoices and expenses. Idempotent per receipt number.
# - python -m flask accounting sync --tenant <id>
#   Push every customer, invoice and expense of the tenant to the configured platforms.
# - python -m flask accounting snapshot --tenant <id> [--start YYYY-MM-DD] [--end YYYY-MM-DD]
#   Print the dashboard snapshot as JSON.

import json
from datetime import timedelta
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import BizLedgerError
from .extensions import db
from .models import SaleFact, SaleFactLine, TenantProfile
from .services import expense_service, invoice_service, reporting_service, tax_service
from .services.identity_service import Principal
from .services.sync_service import SyncBridge
from .time_utils import parse_iso_date, today, utcnow

DEMO_SALES = (
    ("R-0001", 3, (("Sugar 1kg", "2", 5_500), ("Cooking oil 1L", "1", 9_000))),
    ("R-0002", 2, (("Rice 5kg", "1", 27_000),)),
    ("R-0003", 1, (("Soap bar", "6", 2_000), ("Sugar 1kg", "1", 5_500))),
)


@click.group("accounting")
def accounting_group():
    """Accounting engine maintenance commands."""


@accounting_group.command("seed-demo")
@click.option("--tenant", "tenant_id", required=True, help="Tenant id to seed")
@click.option("--email", default="demo@bizledger.local", show_default=True)
@with_appcontext
def seed_demo(tenant_id: str, email: str):
    """Seed a tenant with a small, realistic set of demo records."""
    principal = Principal(tenant_id=tenant_id, email=email, is_demo=True)

    if not db.session.query(TenantProfile).filter_by(tenant_id=tenant_id).first():
        db.session.add(TenantProfile(tenant_id=tenant_id, email=email, business_name="Demo Shop"))

    now = utcnow()
    created_sales = 0
    for receipt, days_ago, lines in DEMO_SALES:
        if db.session.query(SaleFact).filter_by(tenant_id=tenant_id, receipt_number=receipt).first():
            continue
        sale_lines = [
            SaleFactLine(
                product_name=name,
                quantity=Decimal(qty),
                unit_price_minor=price,
                line_total_minor=tax_service.compute_line_total(qty, price),
            )
            for name, qty, price in lines
        ]
        sale = SaleFact(
            tenant_id=tenant_id,
            receipt_number=receipt,
            total_minor=sum(line.line_total_minor for line in sale_lines),
            currency_code=current_app.config["DEFAULT_CURRENCY"],
            occurred_at=now - timedelta(days=days_ago),
        )
        sale.lines = sale_lines
        db.session.add(sale)
        created_sales += 1
    db.session.commit()

    try:
        invoice, _ = invoice_service.create_invoice(
            principal,
            items=[{"name": "Catering order", "quantity": 1, "unit_price_minor": 150_000}],
            customer_name="Kampala Events Ltd",
            currency_code=current_app.config["DEFAULT_CURRENCY"],
            issue_date=today() - timedelta(days=10),
            due_date=today() + timedelta(days=20),
        )
        invoice_service.send_invoice(principal, invoice.id)
        expense_service.create_expense(
            principal,
            amount_minor=80_000,
            description="Shop rent",
            category="Rent",
            payment_method="bank_transfer",
            currency_code=current_app.config["DEFAULT_CURRENCY"],
        )
    except BizLedgerError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Seeded tenant {tenant_id}: {created_sales} sale(s), 1 invoice, 1 expense")


@accounting_group.command("sync")
@click.option("--tenant", "tenant_id", required=True, help="Tenant id to push")
@with_appcontext
def sync_tenant(tenant_id: str):
    """Push all of a tenant's records to the configured accounting platforms."""
    bridge = SyncBridge.from_config(current_app.config)
    if not bridge.platform_names:
        click.echo("No accounting platform configured; nothing to push.")
        return
    try:
        summary = bridge.trigger_sync(Principal(tenant_id=tenant_id))
    finally:
        bridge.close()

    for entity_type, counts in summary.items():
        click.echo(
            f"{entity_type:<10} ok={counts['ok']} skipped={counts['skipped']} failed={counts['failed']}"
        )


@accounting_group.command("snapshot")
@click.option("--tenant", "tenant_id", required=True, help="Tenant id to summarize")
@click.option("--start", default=None, help="Window start (YYYY-MM-DD)")
@click.option("--end", default=None, help="Window end (YYYY-MM-DD)")
@with_appcontext
def snapshot(tenant_id: str, start, end):
    """Print the financial snapshot for a tenant as JSON."""
    try:
        window = reporting_service.fetch_window(
            Principal(tenant_id=tenant_id),
            parse_iso_date(start),
            parse_iso_date(end),
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc))

    result = reporting_service.build_snapshot(
        window,
        today=today(),
        rates=reporting_service.TaxRates.from_config(current_app.config),
    )
    click.echo(json.dumps(result.to_dict(), indent=2))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(accounting_group)
