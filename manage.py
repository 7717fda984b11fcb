#!/usr/bin/env python
"""
Command line entry point for the consultorio project.

Sets ``DJANGO_SETTINGS_MODULE`` to ``consultorio.settings`` and hands
over to Django's management utility, so operator tasks such as
``python manage.py backup_db`` or ``python manage.py ensure_test_doctor``
run against the configured database.
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'consultorio.settings')
    from django.core.management import execute_from_command_line

    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
