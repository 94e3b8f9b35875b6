"""
Management command to bulk import clients, products, price lists, prices or
discounts from an XLSX or CSV file
"""
from django.core.management.base import BaseCommand, CommandError
from backend.imports.importers import IMPORTERS, get_importer
from backend.imports.parsers import parse_file, ROW_MAPPERS, FileParseError


class Command(BaseCommand):
    help = "Imports an XLSX or CSV file through the same validation as the bulk endpoints"

    def add_arguments(self, parser):
        parser.add_argument('entity', choices=sorted(IMPORTERS), help='What the file contains')
        parser.add_argument('path', help='Path to the .xlsx or .csv file')
        parser.add_argument(
            '--distributor',
            default='',
            help='Distributor code the imported rows belong to',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate the file without saving anything',
        )

    def handle(self, *args, **options):
        entity = options['entity']
        path = options['path']

        try:
            with open(path, 'rb') as f:
                rows = parse_file(f, path)
        except FileNotFoundError:
            raise CommandError(f"File not found: {path}")
        except FileParseError as e:
            raise CommandError(str(e))

        items = ROW_MAPPERS[entity](rows)
        self.stdout.write(f"Importing {len(items)} {entity.replace('_', ' ')} from {path}"
                          f"{' (dry run)' if options['dry_run'] else ''}")

        result = get_importer(entity)(items, distributor_code=options['distributor'], dry_run=options['dry_run'])

        for error in result.errors:
            self.stdout.write(self.style.ERROR(f"  ✗ Row {error['index'] + 1}: {error['error']}"))
        for name, value in result.validations.items():
            if value:
                self.stdout.write(self.style.WARNING(f"  {name}: {value}"))

        style = self.style.SUCCESS if result.success else self.style.ERROR
        self.stdout.write(style(result.message))
        self.stdout.write(f"Processed: {result.total}  Created: {result.success_count}  Errors: {result.error_count}")
