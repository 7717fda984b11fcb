from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from clinic.services.data_transfer import IMPORT_FORMATS, SchemaError, import_file


class Command(BaseCommand):
    help = "Upsert rows from a JSON, XML or CSV export into the clinic tables."

    def add_arguments(self, parser):
        parser.add_argument('path')
        parser.add_argument('--format', dest='fmt', choices=IMPORT_FORMATS, default=None,
                            help='Defaults to the file extension.')
        parser.add_argument('--table', default=None, help='Target table for CSV input.')

    def handle(self, *args, **opts):
        path = Path(opts['path'])
        if not path.is_file():
            raise CommandError(f"file not found: {path}")
        fmt = opts['fmt'] or path.suffix.lstrip('.').lower()
        try:
            report = import_file(path, fmt, table=opts['table'])
        except SchemaError as exc:
            raise CommandError(str(exc))

        summary = f"imported={report['imported']} updated={report['updated']} skipped={report['skipped']}"
        if report['errors']:
            for err in report['errors']:
                self.stderr.write(err)
            raise CommandError(f"import rolled back ({summary})")
        self.stdout.write(self.style.SUCCESS(summary))
