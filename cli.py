import argparse
import csv
import json
import logging
import shutil

from config import default_db_path, setup_logging
from db import (
    Database,
    ProgramRepository,
    ProgramDayRepository,
    ProgramDayExerciseRepository,
    ProgramHistoryRepository,
)
from algorithms import WeightConverter, format_duration
from exceptions import NoDaysDefined, ProgramNotFound
from program_service import ProgramService
from rest_api import ProgramAPI
from seed_sample_data import seed

logger = logging.getLogger(__name__)

EXPORT_FIELDS = [
    "id",
    "program_id",
    "program_day_id",
    "day_index",
    "day_name",
    "performed_at",
    "duration_seconds",
]


def export_history(db_path: str, fmt: str, output_dir: str = ".") -> str:
    """Write the full program history as CSV or JSON and return the path."""
    rows = ProgramHistoryRepository(db_path).query_history()
    if fmt == "csv":
        out_path = f"{output_dir}/program_history.csv"
        with open(out_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=EXPORT_FIELDS, extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
    else:
        out_path = f"{output_dir}/program_history.json"
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2)
    logger.info("exported %d history rows to %s", len(rows), out_path)
    return out_path


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str) -> None:
    """Populate the database with the demo program if empty."""
    seed(ProgramAPI(db_path=db_path, yaml_path=yaml_path))


def program_status(db_path: str) -> str:
    """Describe the active program and its next day."""
    service = ProgramService(
        ProgramRepository(db_path),
        ProgramDayRepository(db_path),
        ProgramDayExerciseRepository(db_path),
        ProgramHistoryRepository(db_path),
    )
    try:
        session = service.start_active_program()
    except ProgramNotFound:
        return "No active program"
    except NoDaysDefined:
        return "Active program has no days"
    program = session["program"]
    day = session["day"]
    done = service.history(program["id"])
    total = sum(r["duration_seconds"] or 0 for r in done)
    return (
        f"{program['name']}: next day {day['day_index'] + 1} ({day['name']}), "
        f"{len(done)} completed, {format_duration(total)} trained"
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default=default_db_path())
    exp.add_argument("--fmt", choices=["csv", "json"], default="csv")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default=default_db_path())
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default=default_db_path())

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default=default_db_path())
    demo.add_argument("--yaml", default="settings.yaml")

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    status = sub.add_parser("status")
    status.add_argument("--db", default=default_db_path())

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db", default=default_db_path())

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.cmd == "export":
        print(export_history(args.db, args.fmt, args.out))
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "status":
        print(program_status(args.db))
    elif args.cmd == "vacuum":
        Database(args.db).vacuum()


if __name__ == "__main__":
    main()
