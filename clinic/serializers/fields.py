import re
from datetime import date, time

import bleach
from rest_framework import serializers

REQUIRED = 'Todos los campos son obligatorios'

# BigAutoField upper bound.
MAX_ID = 9223372036854775807


def messages(message, *keys):
    keys = keys or ('required', 'blank', 'null', 'invalid')
    return {key: message for key in keys}


def id_field(message, **kwargs):
    return serializers.IntegerField(
        min_value=1,
        max_value=MAX_ID,
        error_messages=messages(message, 'required', 'null', 'invalid', 'min_value', 'max_value', 'max_string_length'),
        **kwargs,
    )


class CleanCharField(serializers.CharField):
    """Trimmed, markup-free text, cut to ``truncate_to`` characters.

    Over-long input is truncated rather than rejected.
    """

    def __init__(self, truncate_to=255, **kwargs):
        self.truncate_to = truncate_to
        kwargs.setdefault('error_messages', messages(REQUIRED))
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = bleach.clean(super().to_internal_value(data), tags=set(), strip=True).strip()
        if not value and not self.allow_blank:
            self.fail('blank')
        if self.truncate_to:
            value = value[:self.truncate_to]
        return value


class DateStringField(serializers.Field):
    """``YYYY-MM-DD`` that also has to name a real calendar day."""
    pattern = re.compile(r'^\d{4}-\d{2}-\d{2}$')
    default_error_messages = {
        'required': REQUIRED,
        'null': REQUIRED,
        'invalid': 'Formato de fecha inválido',
    }

    def to_internal_value(self, data):
        if data in ('', None):
            self.fail('required')
        if not isinstance(data, str) or not self.pattern.match(data):
            self.fail('invalid')
        try:
            return date.fromisoformat(data)
        except ValueError:
            self.fail('invalid')

    def to_representation(self, value):
        return value.isoformat()


class TimeStringField(serializers.Field):
    pattern = re.compile(r'^\d{2}:\d{2}$')
    default_error_messages = {
        'required': REQUIRED,
        'null': REQUIRED,
        'invalid': 'Formato de hora inválido',
    }

    def to_internal_value(self, data):
        if data in ('', None):
            self.fail('required')
        if not isinstance(data, str) or not self.pattern.match(data):
            self.fail('invalid')
        hours, minutes = (int(part) for part in data.split(':'))
        if hours > 23 or minutes > 59:
            self.fail('invalid')
        return time(hours, minutes)

    def to_representation(self, value):
        return value.strftime('%H:%M')
