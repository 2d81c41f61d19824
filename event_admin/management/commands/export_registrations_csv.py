import os

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from booking.models import REGISTER_TYPE_CHOICES
from event_admin.exports import export_rows, write_csv


class Command(BaseCommand):
    help = 'Export active slot registrations to a CSV file with schedule and registrant details'

    def add_arguments(self, parser):
        parser.add_argument(
            '--output',
            type=str,
            help='Output CSV path (default: registrations_<timestamp>.csv in the current directory)'
        )
        parser.add_argument(
            '--search',
            type=str,
            default='',
            help='Only export registrations whose user id or name contains this text'
        )
        parser.add_argument(
            '--department',
            type=str,
            default='',
            help='Only export registrations from this department'
        )
        parser.add_argument(
            '--register-type',
            type=str,
            default='',
            choices=[''] + [value for value, _ in REGISTER_TYPE_CHOICES],
            help='Only export regular or outsource registrations'
        )

    def handle(self, *args, **options):
        output = options.get('output') or f"registrations_{timezone.localtime():%Y%m%d_%H%M%S}.csv"

        directory = os.path.dirname(output)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

        try:
            with open(output, 'w', newline='', encoding='utf-8-sig') as csvfile:
                count = write_csv(csvfile, export_rows(
                    search=options['search'].strip(),
                    department=options['department'],
                    register_type=options['register_type'],
                ))
        except OSError as e:
            raise CommandError(f'Error exporting registrations: {e}')

        if count:
            self.stdout.write(self.style.SUCCESS(f'✓ Exported {count} registrations to {output}'))
        else:
            self.stdout.write(self.style.WARNING(f'⚠ No registrations found to export, wrote header only to {output}'))
