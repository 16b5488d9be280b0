import argparse
import logging
import sys
from pathlib import Path

from assessment_api.database import SessionLocal, init_db
from assessment_api.models.db.user import UserRole
from assessment_api.services import auth_service, content_service
from assessment_api.services.sweep_service import run_sweep
from assessment_api.utils.json_utils import read_json_file
from core.logging_setup import setup_console_logging

setup_console_logging()
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Course assessment engine tools")
    commands = parser.add_subparsers(dest="command", required=True)

    import_parser = commands.add_parser("import-course", help="Load a course from JSON")
    import_parser.add_argument("file", type=Path, help="Path to course JSON file")
    import_parser.add_argument(
        "--unpublished",
        action="store_true",
        help="Import the course without publishing it",
    )

    commands.add_parser("sweep", help="Expire stale sessions and retry pending certificates")

    role_parser = commands.add_parser("set-role", help="Change a user's role")
    role_parser.add_argument("email", help="User email")
    role_parser.add_argument("role", choices=[role.value for role in UserRole])

    return parser.parse_args(argv)


def import_course(path: Path, publish: bool = True) -> int:
    try:
        payload = read_json_file(path, None)
    except ValueError as e:
        logger.error(f"Could not parse {path}: {e}")
        return 1
    if not isinstance(payload, dict):
        logger.error(f"{path} does not contain a course object")
        return 1

    db = SessionLocal()
    try:
        try:
            course = content_service.import_course(db, payload)
        except ValueError as e:
            db.rollback()
            logger.error(f"Invalid course file {path}: {e}")
            return 1
        if not publish:
            course.is_published = False
            db.commit()
        print(f"Imported course {course.id}: {course.title}")
        return 0
    finally:
        db.close()


def set_role(email: str, role: str) -> int:
    db = SessionLocal()
    try:
        user = auth_service.get_user_by_email(db, email)
        if user is None:
            logger.error(f"No user with email {email}")
            return 1
        auth_service.set_role(db, user, role)
        print(f"{user.email} is now {user.role}")
        return 0
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_db()

    if args.command == "import-course":
        return import_course(args.file, publish=not args.unpublished)
    if args.command == "sweep":
        expired, issued = run_sweep()
        print(f"Expired {expired} sessions, completed {issued} certificate issuances")
        return 0
    if args.command == "set-role":
        return set_role(args.email, args.role)
    return 2


if __name__ == "__main__":
    sys.exit(main())
