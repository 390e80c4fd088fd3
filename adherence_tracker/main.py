"""Medication reminder console for a patient session."""

import argparse
import logging
import sys
from dataclasses import dataclass, field

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from adherence_tracker import config
from adherence_tracker.errors import ReminderError
from adherence_tracker.reminders.database.connection import init_database
from adherence_tracker.service import ReminderService
from adherence_tracker.timezone_window import REFERENCE_TZ, today

console = Console()
service = ReminderService()

HELP_TEXT = """Commands:
  today                   medications scheduled today
  date YYYY-MM-DD         medications scheduled on a date
  take N [N ...]          mark listed medications as taken (list number or reminder id)
  snooze N [MINUTES]      snooze a listed medication (1-60 minutes, default 5)
  upcoming [DAYS]         pending reminders for the next days
  history [DAYS]          adherence over the last days (default 30)
  sweep                   mark long-overdue reminders as missed
  quit                    leave"""


@dataclass
class Session:
    """Tracks the patient and the last listing shown, so items can be picked by number."""
    patient_id: str
    listed_ids: list = field(default_factory=list)

    def resolve(self, token: str) -> str:
        """Map a list number to its reminder id; anything else is taken as an id."""
        if token.isdigit() and 1 <= int(token) <= len(self.listed_ids):
            return self.listed_ids[int(token) - 1]
        return token


def _local(instant) -> str:
    return instant.astimezone(REFERENCE_TZ).strftime("%Y-%m-%d %H:%M")


def handle_date(session: Session, args: list[str]):
    """Show one day's medications."""
    date_str = args[0] if args else today().isoformat()
    day = service.get_medications_by_date(session.patient_id, date_str)

    table = Table(title=f"{date_str}: {day.taken}/{day.total} taken ({day.adherence_rate}%)")
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Medication")
    table.add_column("Dosage")
    table.add_column("Status")

    session.listed_ids = [m.reminder_id for m in day.medications]
    for number, medication in enumerate(day.medications, start=1):
        status = medication.status
        if medication.snoozed_until and status in ("scheduled", "pending"):
            status += f" (snoozed to {_local(medication.snoozed_until)[-5:]})"
        table.add_row(
            str(number),
            _local(medication.scheduled_for)[-5:],
            medication.medication_name,
            medication.dosage,
            status,
        )
    return table


def handle_today(session: Session, args: list[str]):
    return handle_date(session, [])


def handle_take(session: Session, args: list[str]) -> str:
    if not args:
        return "Which medication? Use the number from the list."
    results = service.confirm_reminders(session.patient_id, [session.resolve(a) for a in args])
    lines = []
    for result in results:
        if result.success:
            lines.append(f"[green]Taken[/green] {result.reminder_id[:8]}")
        else:
            lines.append(f"[red]Not recorded[/red] {result.reminder_id[:8]}: {result.error}")
    return "\n".join(lines) or "Nothing to confirm."


def handle_snooze(session: Session, args: list[str]) -> str:
    if not args:
        return "Which medication? Use the number from the list."
    minutes = int(args[1]) if len(args) > 1 and args[1].isdigit() else config.DEFAULT_SNOOZE_MINUTES
    until = service.snooze_reminder(session.patient_id, session.resolve(args[0]), minutes)
    return f"Snoozed until {_local(until)[-5:]}"


def handle_upcoming(session: Session, args: list[str]):
    days = int(args[0]) if args and args[0].isdigit() else config.SYNC_HORIZON_DAYS
    result = service.get_upcoming_reminders(session.patient_id, days)

    table = Table(title=f"Next {days} days: {len(result.reminders)} reminders")
    table.add_column("#", justify="right")
    table.add_column("When")
    table.add_column("Medication")
    table.add_column("Dosage")

    session.listed_ids = [r.id for r in result.reminders]
    for number, reminder in enumerate(result.reminders, start=1):
        table.add_row(str(number), _local(reminder.scheduled_for), reminder.medication_name, reminder.dosage)
    return table


def handle_history(session: Session, args: list[str]):
    days = int(args[0]) if args and args[0].isdigit() else 30
    report = service.get_adherence_history(session.patient_id, days)

    table = Table(
        title=(
            f"Last {days} days: {report.rate}% "
            f"({report.taken} taken, {report.missed} missed, {report.pending} pending)"
        )
    )
    table.add_column("Medication")
    table.add_column("Taken", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Rate", justify="right")
    for medication in report.per_medication:
        table.add_row(
            medication.medication_name,
            str(medication.taken),
            str(medication.total),
            f"{medication.rate}%",
        )
    for week in report.per_week:
        table.add_row(f"[dim]Week {week.week}[/dim]", str(week.taken), str(week.total), f"{week.rate}%")
    return table


def handle_sweep(session: Session, args: list[str]) -> str:
    swept = service.sweep_missed(patient_id=session.patient_id)
    return f"{swept} reminder(s) marked as missed."


def handle_help(session: Session, args: list[str]) -> str:
    return HELP_TEXT


# Command handlers mapping
COMMAND_HANDLERS = {
    "today": handle_today,
    "date": handle_date,
    "take": handle_take,
    "snooze": handle_snooze,
    "upcoming": handle_upcoming,
    "history": handle_history,
    "sweep": handle_sweep,
    "help": handle_help,
}


def process_input(session: Session, user_input: str):
    """Run one command line and return something printable."""
    parts = user_input.split()
    if not parts:
        return ""
    handler = COMMAND_HANDLERS.get(parts[0].lower())
    if handler is None:
        return f"Unknown command '{parts[0]}'. Type 'help' for the list."
    try:
        return handler(session, parts[1:])
    except ReminderError as e:
        return f"[red]{e}[/red]"


def setup_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def main():
    """Main command loop."""
    parser = argparse.ArgumentParser(description="Medication reminder console")
    parser.add_argument("--patient", required=True, help="Patient ID")
    args = parser.parse_args()

    setup_logging()
    init_database()

    console.print("[bold blue]Medication reminders[/bold blue]")
    console.print("Type 'help' for commands, 'quit' to leave.\n")

    session = Session(patient_id=args.patient)
    console.print(process_input(session, "today"), "\n")

    is_tty = sys.stdin.isatty()

    while True:
        try:
            user_input = console.input("[bold green]>[/bold green] ").strip()
            # Echo input when stdin is piped (not interactive)
            if not is_tty and user_input:
                console.print(f"[dim]{user_input}[/dim]")
        except (EOFError, KeyboardInterrupt):
            console.print("\n[bold blue]Goodbye![/bold blue]")
            break

        if not user_input:
            continue

        if user_input.lower() in ("quit", "exit"):
            console.print("[bold blue]Goodbye![/bold blue]")
            break

        console.print(process_input(session, user_input), "\n")


if __name__ == "__main__":
    main()
