"""Regex patterns for birthday parsing."""

import re

# Canonical stored form: MM-DD
BIRTHDAY_PATTERN = re.compile(r'^(\d{2})-(\d{2})$')

# Loose user input
BIRTHDAY_INPUT_PATTERNS = [
    re.compile(r'^(\d{1,2})\s*[-/.]\s*(\d{1,2})$'),  # 3-15, 03/15, 3.15
]

# January 15, Jan 15th
MONTH_DAY_PATTERN = re.compile(r'^([a-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?$', re.IGNORECASE)

# 15 January, 15th of Jan
DAY_MONTH_PATTERN = re.compile(
    r'^(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?([a-z]+)\.?$', re.IGNORECASE
)

# Month names
MONTH_NAMES = {
    'january': 1, 'jan': 1,
    'february': 2, 'feb': 2,
    'march': 3, 'mar': 3,
    'april': 4, 'apr': 4,
    'may': 5,
    'june': 6, 'jun': 6,
    'july': 7, 'jul': 7,
    'august': 8, 'aug': 8,
    'september': 9, 'sep': 9, 'sept': 9,
    'october': 10, 'oct': 10,
    'november': 11, 'nov': 11,
    'december': 12, 'dec': 12,
}

# Feb allows 29 so leap-day birthdays are valid
DAYS_IN_MONTH = [31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
