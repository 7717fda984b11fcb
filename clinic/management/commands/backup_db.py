from django.core.management.base import BaseCommand, CommandError

from clinic.services.data_transfer import BACKUP_FORMATS, SchemaError, create_backup


class Command(BaseCommand):
    help = "Dump all (or the named) clinic tables into BACKUP_DIR and prune old backups."

    def add_arguments(self, parser):
        parser.add_argument('tables', nargs='*', help='Tables to include; all registered tables by default.')
        parser.add_argument('--format', dest='fmt', choices=BACKUP_FORMATS, default='sql')
        parser.add_argument('--dir', dest='directory', default=None)
        parser.add_argument('--keep', type=int, default=None, help='Backups to keep (BACKUP_KEEP).')

    def handle(self, *args, **opts):
        try:
            result = create_backup(
                opts['tables'] or None, opts['fmt'],
                directory=opts['directory'], keep=opts['keep'],
            )
        except SchemaError as exc:
            raise CommandError(str(exc))
        for f in result['files']:
            self.stdout.write(self.style.SUCCESS(f"backup: {f} ({result['total_rows']} rows)"))
        for f in result['removed']:
            self.stdout.write(f"removed: {f}")
