"""
Module for formatting currency amounts and dates using Babel.

"""
import datetime
import logging
from decimal import Decimal
from typing import Optional, Union

from babel import Locale, UnknownLocaleError, dates, numbers

DEFAULT_LOCALE: str = 'en_US'
DEFAULT_CURRENCY: str = 'USD'


def format_currency_value(value: Union[Decimal, float, int], locale: str = DEFAULT_LOCALE,
                          currency: str = DEFAULT_CURRENCY) -> str:
    """
    Format an amount as a currency string.

    Args:
        value: The amount to format.
        locale (str): Locale string, e.g. 'en_US'.
        currency (str): ISO currency code, e.g. 'USD'.

    Returns:
        str: The formatted currency string, e.g. '$12.50'.
    """
    try:
        locale_obj = Locale.parse(locale)
        return numbers.format_currency(value, currency=currency, locale=locale_obj)
    except (ValueError, TypeError, UnknownLocaleError) as ex:
        logging.error(f'Error formatting currency: {ex}')
        return str(value)


def parse_date(value: Union[str, datetime.date, None]) -> Optional[datetime.date]:
    """
    Parse an ISO-8601 date or timestamp as sent by the server.

    Returns:
        The date, or None when the value is empty or unparsable.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        # Server timestamps end in 'Z'
        return datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()
    except ValueError:
        logging.debug(f'Could not parse date "{value}"')
        return None


def format_date_value(value: Union[str, datetime.date, None], locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a date in the locale's medium format, e.g. 'Jan 5, 2025'.

    Args:
        value: Date, datetime or ISO string.
        locale (str): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted date, or an empty string for missing dates.
    """
    date = parse_date(value)
    if date is None:
        return ''
    try:
        return dates.format_date(date, format='medium', locale=Locale.parse(locale))
    except (ValueError, UnknownLocaleError) as ex:
        logging.error(f'Error formatting date: {ex}')
        return date.isoformat()
