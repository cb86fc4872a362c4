#!/usr/bin/env python3
"""
Lease Rate Explorer

Prices vehicles from the ratebook export: builds the provider x payment
profile matrix, picks the best prices, applies overrides, scores the deal
and places it against competitor prices.

Usage:
    python explore.py price TOYA1 --mileage 10000        # One vehicle
    python explore.py price TOYA1 --maintained --csv m.csv
    python explore.py terms TOYA1 --mileage 10000        # Score per term
    python explore.py scan --mileage 10000               # Whole catalogue
    python explore.py overrides list                     # Override admin
    python explore.py overrides add --cap-code TOYA1 --type absolute --value -5
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional, Any

import pandas as pd

from rate_explorer.core import (
    InvalidOverrideError,
    OverrideNotFoundError,
    OverrideStore,
    OverrideType,
    ScoreInput,
    VehiclePricing,
    calculate_multi_term_scores,
    get_pricing_config,
    load_ratebook,
    load_vehicles,
    price_vehicle,
    quotes_for_vehicle,
    round_half_up,
    scan_catalogue,
)
from rate_explorer.core.loader import DEFAULT_DATA_DIR, data_path
from rate_explorer.core.overrides import override_from_request, override_to_response
from rate_explorer.core.scoring import score_summary
from rate_explorer.competitors import CompetitorStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_MILEAGE = 10000


def format_money(pence: Optional[int]) -> str:
    """Format minor units as pounds ('£399.00'); 'N/A' when missing."""
    if pence is None:
        return "N/A"
    return f"£{pence / 100:,.2f}"


def find_vehicle(vehicles, vehicle_id: str):
    for vehicle in vehicles:
        if vehicle.id == vehicle_id or (vehicle.cap_code and vehicle.cap_code.upper() == vehicle_id.upper()):
            return vehicle
    return None


# === Reports ===

def generate_matrix_report(pricing: VehiclePricing) -> str:
    """Text report of one vehicle's matrix and pricing outcome."""
    matrix = pricing.matrix
    selection = pricing.selection
    provider_names = get_pricing_config().provider_names

    report_lines = [
        "",
        "=" * 100,
        f"VEHICLE: {pricing.vehicle.display_name}",
        f"  Mileage: {pricing.mileage or 'N/A'} | "
        f"{'Maintained' if pricing.includes_maintenance else 'Non-maintained'}",
        "=" * 100,
    ]

    if matrix.is_empty:
        report_lines.append(f"  {matrix.message}")
        return "\n".join(report_lines)

    header = f"  {'Provider':<22}" + "".join(f"{p.key:>12}" for p in matrix.profiles)
    report_lines.append(header)
    report_lines.append("  " + "-" * (len(header) - 2))

    for provider, row in zip(matrix.providers, matrix.prices):
        cells = []
        for profile, price in zip(matrix.profiles, row):
            cell = matrix.cell(provider, profile)
            text = format_money(price) if price is not None else "-"
            if cell.is_estimate:
                text += "~"
            elif selection.is_column_best(provider, profile):
                text += "*"
            cells.append(f"{text:>12}")
        name = provider_names.get(provider, provider)
        report_lines.append(f"  {name:<22}" + "".join(cells))

    best = selection.overall_best
    market = pricing.market
    report_lines.extend([
        "",
        f"  Best: {provider_names.get(best.provider, best.provider)} "
        f"{best.profile.term}m / {best.profile.initial_payment_months} initial "
        f"at {format_money(best.price)}",
        f"  Final price: {format_money(pricing.final_price)}"
        + (f" (override {pricing.override.applied_override_id})" if pricing.override.applied_override_id else ""),
    ])
    if pricing.score:
        report_lines.append(f"  Score: {pricing.score.score} ({pricing.score.label})")
    if market.has_competition:
        report_lines.append(
            f"  Market: {market.position.value}, percentile {market.percentile}, "
            f"{market.price_delta_percent:+d}% vs avg, {market.competitor_count} competitor(s)"
        )
    else:
        report_lines.append("  Market: no comparable competitor prices")
    if pricing.otr_opportunity:
        otr = pricing.otr_opportunity
        report_lines.append(
            f"  Terms holder OTR saving: {format_money(otr.savings)} ({otr.savings_percent}%)"
        )

    report_lines.extend([
        "",
        "  * = best price for that term/initial payment (saving of at least "
        f"{get_pricing_config().selector.significance_threshold:.0%})",
        "  ~ = estimated from the same provider's nearest actual quote",
    ])
    return "\n".join(report_lines)


def generate_scan_csv(results: List[VehiclePricing], filename: str):
    """Save catalogue scan rows as CSV."""
    df = pd.DataFrame([r.to_row() for r in results])
    df.to_csv(filename, index=False)
    logger.info(f"Saved scan to {filename}")


# === Commands ===

def load_overrides(data_dir: str) -> OverrideStore:
    return OverrideStore(data_path("overrides", data_dir))


def load_competitors(data_dir: str) -> CompetitorStore:
    return CompetitorStore(data_path("competitors", data_dir))


def cmd_price(args) -> int:
    vehicles = load_vehicles(args.data_dir)
    vehicle = find_vehicle(vehicles, args.vehicle)
    if vehicle is None:
        print(f"Vehicle not found: {args.vehicle}")
        return 1

    ratebook = load_ratebook(args.data_dir)
    quotes = quotes_for_vehicle(ratebook, vehicle.id, args.mileage).get(args.mileage, [])
    pricing = price_vehicle(
        vehicle,
        quotes,
        overrides=load_overrides(args.data_dir).snapshot(),
        competitor_prices=load_competitors(args.data_dir).competitor_prices_for(vehicle.id),
        mileage=args.mileage,
        include_maintenance=args.maintained,
        provider_otr=args.provider_otr,
        terms_holder_otr=args.terms_holder_otr,
    )

    if args.json:
        print(json.dumps(pricing.to_response(), indent=2, default=str))
    else:
        print(generate_matrix_report(pricing))

    if args.csv and not pricing.matrix.is_empty:
        pricing.matrix.to_dataframe().to_csv(args.csv)
        logger.info(f"Saved matrix to {args.csv}")
    return 0


def cmd_terms(args) -> int:
    vehicles = load_vehicles(args.data_dir)
    vehicle = find_vehicle(vehicles, args.vehicle)
    if vehicle is None:
        print(f"Vehicle not found: {args.vehicle}")
        return 1

    ratebook = load_ratebook(args.data_dir)
    quotes = quotes_for_vehicle(ratebook, vehicle.id, args.mileage).get(args.mileage, [])

    # Cheapest quote per term at the requested initial payment
    best_by_term: Dict[int, Any] = {}
    for quote in quotes:
        if quote.includes_maintenance != args.maintained:
            continue
        if quote.initial_payment_months != args.initial:
            continue
        current = best_by_term.get(quote.term)
        if current is None or quote.monthly_rental < current.monthly_rental:
            best_by_term[quote.term] = quote

    if not best_by_term:
        print(f"No quotes for {vehicle.display_name} with {args.initial} months initial")
        return 1

    inputs = [
        ScoreInput.for_vehicle(
            vehicle,
            quote.monthly_rental,
            term=term,
            initial_payment_months=args.initial,
            contract_type=quote.contract_type,
        )
        for term, quote in sorted(best_by_term.items())
    ]
    scores = calculate_multi_term_scores(inputs)
    summary = score_summary(scores)

    print(f"\n{vehicle.display_name} ({args.initial} months initial)")
    print(f"  {'Term':<6} {'Monthly':>10} {'Total':>12} {'Score':>6}  Rank")
    for score in scores:
        print(
            f"  {score.term:<6} {format_money(score.monthly_rental):>10} "
            f"{format_money(score.total_cost):>12} {score.score:>6}  {score.rank}"
        )
    print(f"\n  Best term: {summary['bestTerm']} months (score {summary['bestScore']})")
    return 0


def cmd_scan(args) -> int:
    vehicles = load_vehicles(args.data_dir)
    ratebook = load_ratebook(args.data_dir)
    results = scan_catalogue(
        vehicles,
        ratebook,
        mileage=args.mileage,
        overrides=load_overrides(args.data_dir).snapshot(),
        competitor_prices=load_competitors(args.data_dir).competitor_prices_by_vehicle(),
        include_maintenance=args.maintained,
        max_workers=args.workers,
    )

    priced = [r for r in results if r.has_rates]
    print(f"\nPriced {len(priced)} of {len(vehicles)} vehicles at {args.mileage} miles/year")
    for result in sorted(priced, key=lambda r: -(r.score.score if r.score else 0))[:args.top]:
        label = result.score.label if result.score else "Unknown"
        print(
            f"  {result.vehicle.display_name:<50} {format_money(result.final_price):>10} "
            f"{label:<12} {result.market.position.value}"
        )

    if args.csv:
        generate_scan_csv(results, args.csv)
    return 0


def cmd_overrides(args) -> int:
    store = load_overrides(args.data_dir)

    try:
        if args.action == 'list':
            overrides = store.list(cap_code=args.cap_code, provider=args.provider, active_only=not args.all)
            print(json.dumps([override_to_response(o) for o in overrides], indent=2))
        elif args.action == 'add':
            payload = {
                'capCode': args.cap_code,
                'providerCode': args.provider,
                'contractType': args.contract_type,
                'term': args.term,
                'annualMileage': args.mileage,
                'overrideType': args.type,
                'value': args.value,
                'priority': args.priority,
                'reason': args.reason,
            }
            override = store.create(override_from_request(payload))
            print(f"Created override {override.id}")
        elif args.action == 'update':
            changes = {}
            if args.value is not None:
                existing = store.get(args.id)
                if existing.override_type == OverrideType.PERCENTAGE:
                    changes['value'] = args.value
                else:
                    changes['value'] = round_half_up(args.value * 100)
            if args.priority is not None:
                changes['priority'] = args.priority
            if args.deactivate:
                changes['is_active'] = False
            override = store.update(args.id, changes)
            print(f"Updated override {override.id}")
        elif args.action == 'delete':
            store.delete(args.id)
            print(f"Deleted override {args.id}")
    except InvalidOverrideError as e:
        print(f"Invalid override: {e}")
        return 1
    except OverrideNotFoundError:
        print(f"Override not found: {args.id}")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Lease Rate Explorer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python explore.py price TOYA1 --mileage 10000   # Matrix and pricing for one vehicle
  python explore.py scan --csv output/scan.csv    # Price the whole catalogue
  python explore.py overrides list                # Active overrides
        """
    )
    parser.add_argument('--data-dir', default=DEFAULT_DATA_DIR, help='Directory with JSON exports')
    subparsers = parser.add_subparsers(dest='command')

    price_parser = subparsers.add_parser('price', help='Price one vehicle')
    price_parser.add_argument('vehicle', help='Vehicle id or cap code')
    price_parser.add_argument('--mileage', type=int, default=DEFAULT_MILEAGE, help='Annual mileage')
    price_parser.add_argument('--maintained', action='store_true', help='Use maintained quotes')
    price_parser.add_argument('--provider-otr', type=int, help='Funder OTR price in pence')
    price_parser.add_argument('--terms-holder-otr', type=int, help='Terms holder OTR price in pence')
    price_parser.add_argument('--json', action='store_true', help='Print the JSON response')
    price_parser.add_argument('--csv', help='Save the matrix as CSV')
    price_parser.set_defaults(func=cmd_price)

    terms_parser = subparsers.add_parser('terms', help='Score one vehicle across terms')
    terms_parser.add_argument('vehicle', help='Vehicle id or cap code')
    terms_parser.add_argument('--mileage', type=int, default=DEFAULT_MILEAGE, help='Annual mileage')
    terms_parser.add_argument('--initial', type=int, default=1, help='Initial payment in months')
    terms_parser.add_argument('--maintained', action='store_true', help='Use maintained quotes')
    terms_parser.set_defaults(func=cmd_terms)

    scan_parser = subparsers.add_parser('scan', help='Price the whole catalogue')
    scan_parser.add_argument('--mileage', type=int, default=DEFAULT_MILEAGE, help='Annual mileage')
    scan_parser.add_argument('--maintained', action='store_true', help='Use maintained quotes')
    scan_parser.add_argument('--workers', type=int, default=4, help='Worker threads')
    scan_parser.add_argument('--top', type=int, default=20, help='Number of deals to print')
    scan_parser.add_argument('--csv', help='Save all rows as CSV')
    scan_parser.set_defaults(func=cmd_scan)

    override_parser = subparsers.add_parser('overrides', help='Manage price overrides')
    override_parser.add_argument('action', choices=['list', 'add', 'update', 'delete'])
    override_parser.add_argument('--id', help='Override id (update/delete)')
    override_parser.add_argument('--cap-code')
    override_parser.add_argument('--provider')
    override_parser.add_argument('--contract-type')
    override_parser.add_argument('--term', type=int)
    override_parser.add_argument('--mileage', type=int)
    override_parser.add_argument('--type', choices=['fixed', 'percentage', 'absolute'])
    override_parser.add_argument('--value', type=float, help='GBP for fixed/absolute, percent for percentage')
    override_parser.add_argument('--priority', type=int)
    override_parser.add_argument('--reason')
    override_parser.add_argument('--deactivate', action='store_true')
    override_parser.add_argument('--all', action='store_true', help='Include inactive overrides')
    override_parser.set_defaults(func=cmd_overrides)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    os.makedirs(args.data_dir, exist_ok=True)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
