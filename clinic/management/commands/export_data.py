from django.core.management.base import BaseCommand, CommandError

from clinic.services.data_transfer import EXPORT_FORMATS, SchemaError, export_tables


class Command(BaseCommand):
    help = "Export clinic tables to CSV, JSON, XML or SQL."

    def add_arguments(self, parser):
        parser.add_argument('tables', nargs='*')
        parser.add_argument('--format', dest='fmt', choices=EXPORT_FORMATS, default='json')
        parser.add_argument('--dir', dest='directory', default=None)
        parser.add_argument('--filename', default=None)

    def handle(self, *args, **opts):
        try:
            result = export_tables(
                opts['tables'] or None, opts['fmt'],
                directory=opts['directory'], filename=opts['filename'],
            )
        except SchemaError as exc:
            raise CommandError(str(exc))
        for f in result['files']:
            self.stdout.write(self.style.SUCCESS(f"export: {f}"))
        self.stdout.write(f"tables: {', '.join(result['tables'])}; rows: {result['total_rows']}; bytes: {result['size']}")
