from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError

from clinic.services.data_transfer import SchemaError, restore_backup, verify_backup


class Command(BaseCommand):
    help = "Check a backup_db file and replace the backed-up tables with its rows."

    def add_arguments(self, parser):
        parser.add_argument('path', help='SQL or JSON file written by backup_db.')
        parser.add_argument('--verify-only', action='store_true',
                            help='Only check the file; the database is not touched.')

    def handle(self, *args, **opts):
        try:
            check = verify_backup(opts['path'])
            self.stdout.write(
                f"{check['file']}: {check['integrity']} "
                f"({len(check['tables'])} tables, {check['total_rows']} rows)"
            )
            if opts['verify_only']:
                return
            result = restore_backup(opts['path'])
        except SchemaError as exc:
            raise CommandError(str(exc))
        except DatabaseError as exc:
            raise CommandError(f"restore rolled back: {exc}")
        self.stdout.write(self.style.SUCCESS(
            f"restored {result['restored_rows']} rows into {', '.join(result['tables'])}"
        ))
