#!/usr/bin/env python3
"""
CLI for tourbook guided tour booking.

Example usage:
    tourbook --tour old-town --date 2026-11-03 --guests 4 --quote
    tourbook --tour old-town --date 2026-11-03 --availability
    tourbook --tour old-town --date 2026-11-03 --time 10:00 --guests 4 --book \\
        --first-name Ana --last-name Novak --email ana@example.com \\
        --phone "+420 123 456 789" --country CZ

Bookings that cannot reach the booking endpoint are kept as drafts:
    tourbook --list-drafts
    tourbook --replay-drafts
"""

import argparse
import logging
import sys
from datetime import date

from .api.base import BookingClientError
from .api.client_factory import create_client
from .config import AppConfig, ConfigError, load_config
from .flow import BookingFlow, Step
from .log import configure_logging
from .models import CustomerInfo, parse_date, parse_time
from .monitoring import BookingMonitor
from .offline.queue import OfflineQueue
from .offline.store import DraftStoreError, create_store
from .offline.submitter import BookingSubmitter
from .tours import UnknownTourError, get_tour
from .validation import calculate_total_price, validate_booking_date


def validate_date(date_str: str) -> date:
    """Parse a date argument and ensure it is inside the booking window."""
    try:
        booking_date = parse_date(date_str)
    except ValueError:
        print(f"Error: Invalid date format '{date_str}'. Use YYYY-MM-DD.")
        sys.exit(1)

    result = validate_booking_date(booking_date)
    if not result.valid:
        print(f"Error: {result.error.message}")
        sys.exit(1)

    return booking_date


def build_queue(config: AppConfig) -> OfflineQueue:
    offline = config.offline
    return OfflineQueue(
        create_store(offline),
        BookingSubmitter(offline.booking_endpoint, timeout=offline.submit_timeout_seconds),
    )


def print_quote(tour_id: str, booking_date: date, guests: int) -> bool:
    try:
        tour = get_tour(tour_id)
        total = calculate_total_price(tour_id, guests, booking_date)
    except UnknownTourError as e:
        print(f"Error: {e}")
        return False

    print(f"Quote:")
    print(f"  Tour:        {tour.id}")
    print(f"  Date:        {booking_date.isoformat()} ({booking_date.strftime('%A')})")
    print(f"  Guests:      {guests}")
    print(f"  Base price:  {tour.base_price:.2f} {tour.currency} per person")
    print(f"  Total:       {total:.2f} {tour.currency}")
    if not tour.operates_on(booking_date.weekday()):
        print(f"  Note: {tour.id} runs on {', '.join(tour.operating_day_names)} only.")
    return True


def print_availability(config: AppConfig, tour_id: str, booking_date: date) -> bool:
    try:
        client = create_client(config.provider)
    except BookingClientError as e:
        print(f"Error: {e}")
        return False

    availability = client.check_availability(tour_id, booking_date)
    if not availability.available:
        print(f"No availability for {tour_id} on {booking_date.isoformat()}.")
        return True

    print(f"Availability for {tour_id} on {booking_date.isoformat()}:")
    for slot in availability.slots:
        print(f"  {slot.time}  {slot.capacity_remaining} spots")
    print(f"  Max group size: {availability.max_group_size}")
    return True


def run_booking(config: AppConfig, args) -> bool:
    """
    Walk the booking flow with the given arguments.

    Returns True if the booking was confirmed or saved for later delivery.
    """
    booking_date = validate_date(args.date)
    try:
        start_time = parse_time(args.time)
    except ValueError:
        print(f"Error: Invalid time format '{args.time}'. Use HH:MM.")
        return False

    try:
        client = create_client(config.provider)
    except BookingClientError as e:
        print(f"Error: {e}")
        return False

    flow = BookingFlow(args.tour, client, build_queue(config), monitor=BookingMonitor(config.monitoring))

    print(f"Booking attempt:")
    print(f"  Tour:        {args.tour}")
    print(f"  Date:        {booking_date.isoformat()}")
    print(f"  Time:        {args.time}")
    print(f"  Guests:      {args.guests}")
    print()

    flow.select_date(booking_date)
    flow.set_schedule(booking_date, start_time, args.guests)
    if flow.next() != Step.CUSTOMER:
        for error in flow.errors:
            print(f"  {error.field}: {error.message}")
        return False

    flow.set_customer(
        CustomerInfo(
            first_name=args.first_name or "",
            last_name=args.last_name or "",
            email=args.email or "",
            phone=args.phone or "",
            country=args.country or "",
        ),
        special_requests=args.special_requests,
    )
    if flow.next() != Step.REVIEW:
        for error in flow.errors:
            print(f"  {error.field}: {error.message}")
        return False

    print(f"  Total:       {flow.total_price:.2f}")
    outcome = flow.submit()

    print()
    print("=" * 50)
    if outcome.confirmed:
        print("SUCCESS! Booking confirmed.")
        if outcome.booking.get("confirmationCode"):
            print(f"  Confirmation: {outcome.booking['confirmationCode']}")
        if outcome.booking.get("bookingId"):
            print(f"  Booking ID:   {outcome.booking['bookingId']}")
    elif outcome.deferred:
        print(outcome.errors[0])
        print(f"  Draft: {outcome.draft_id}")
    else:
        print("Booking failed.")
        for message in outcome.errors:
            print(f"  {message}")
        if outcome.draft_id:
            print(f"  Kept as draft {outcome.draft_id}; retry with --replay-drafts")
    print("=" * 50)

    return outcome.confirmed or outcome.deferred


def require_args(args, parser, names: dict):
    missing = [flag for flag, value in names.items() if value is None]
    if missing:
        parser.error(f"the following arguments are required: {', '.join(missing)}")


def main():
    parser = argparse.ArgumentParser(
        description="tourbook: guided tour booking",
        epilog="Example: tourbook --tour old-town --date 2026-11-03 --guests 4 --quote"
    )
    parser.add_argument("--tour", help="Tour id (e.g., 'old-town')")
    parser.add_argument("--date", help="Tour date in YYYY-MM-DD format")
    parser.add_argument("--time", help="Start time (e.g., '10:00')")
    parser.add_argument("--guests", type=int, help="Group size")

    parser.add_argument("--first-name")
    parser.add_argument("--last-name")
    parser.add_argument("--email")
    parser.add_argument("--phone")
    parser.add_argument("--country")
    parser.add_argument("--special-requests")

    parser.add_argument("--quote", action="store_true", help="Print the price for --tour/--date/--guests")
    parser.add_argument("--availability", action="store_true", help="List open slots for --tour/--date")
    parser.add_argument("--book", action="store_true", help="Book the tour")

    parser.add_argument("--list-drafts", action="store_true", help="List bookings waiting to be submitted")
    parser.add_argument("--replay-drafts", action="store_true", help="Submit every pending draft now")

    parser.add_argument("--schedule-replay", action="store_true",
                        help="Create the recurring EventBridge replay job")
    parser.add_argument("--list-jobs", action="store_true", help="List cloud-scheduled jobs")
    parser.add_argument("--cancel-job", help="Cancel a cloud-scheduled job by name")

    parser.add_argument("--config", help="Path to config.json (default: $TOURBOOK_CONFIG or ./config.json)")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")

    args = parser.parse_args()
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.list_jobs:
        from .scheduler import list_schedules
        schedules = list_schedules()
        if not schedules:
            print("No scheduled jobs.")
        else:
            print(f"Scheduled jobs ({len(schedules)}):\n")
            for s in schedules:
                print(f"  {s['name']}")
                print(f"    State:    {s['state']}")
                print(f"    Schedule: {s['schedule']}")
                print()
        sys.exit(0)

    if args.cancel_job:
        from .scheduler import cancel_schedule
        try:
            cancel_schedule(args.cancel_job)
            print(f"Cancelled: {args.cancel_job}")
        except Exception as e:
            print(f"Error cancelling job: {e}")
            sys.exit(1)
        sys.exit(0)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.schedule_replay:
        from .scheduler import SchedulerError, rate_expression, schedule_replay
        try:
            name = schedule_replay(config.offline.replay_interval_seconds)
        except SchedulerError as e:
            print(f"Error: {e}")
            sys.exit(1)
        print(f"Replay job scheduled!")
        print(f"  Name:     {name}")
        print(f"  Schedule: {rate_expression(config.offline.replay_interval_seconds)}")
        print("To cancel: tourbook --cancel-job " + name)
        sys.exit(0)

    if args.list_drafts or args.replay_drafts:
        queue = build_queue(config)
        try:
            if args.list_drafts:
                drafts = queue.pending()
                if not drafts:
                    print("No pending drafts.")
                for draft in drafts:
                    p = draft.payload
                    print(f"  {draft.id}  {draft.created_at}")
                    print(f"    {p.get('tourId', '?')} on {p.get('date', '?')} at "
                          f"{p.get('startTime', '?')} for {p.get('groupSize', '?')}")
            else:
                report = queue.replay()
                print(f"Submitted {len(report.submitted)} draft(s), {len(report.retained)} still pending.")
        except DraftStoreError as e:
            print(f"Error: {e}")
            sys.exit(1)
        sys.exit(0)

    if args.quote:
        require_args(args, parser, {"--tour": args.tour, "--date": args.date, "--guests": args.guests})
        try:
            booking_date = parse_date(args.date)
        except ValueError:
            parser.error(f"Invalid date format '{args.date}'. Use YYYY-MM-DD.")
        sys.exit(0 if print_quote(args.tour, booking_date, args.guests) else 1)

    if args.availability:
        require_args(args, parser, {"--tour": args.tour, "--date": args.date})
        sys.exit(0 if print_availability(config, args.tour, validate_date(args.date)) else 1)

    if args.book:
        require_args(args, parser, {
            "--tour": args.tour,
            "--date": args.date,
            "--time": args.time,
            "--guests": args.guests,
        })
        sys.exit(0 if run_booking(config, args) else 1)

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
