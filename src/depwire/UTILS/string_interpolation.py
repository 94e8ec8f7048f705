"""
Utilities for string interpolation using environment variables.
"""
import re
from typing import Dict, List, Optional


class EnvironmentInterpolator:
    """
    Utility for interpolating environment variables in strings.
    Supports $VAR, ${VAR}, ${VAR:-default}, ${VAR-default}, ${VAR:+value},
    ${VAR+value}, ${VAR:?error}, ${VAR?error} and the $$ escape.
    """
    # Group 1: escaped dollar
    # Group 2: braced VAR name
    # Group 3: modifier (:-, -, :+, +, :?, ?)
    # Group 4: default, value or error message
    # Group 5: bare VAR name
    PATTERN = re.compile(
        r'\$(?:(\$)|\{([A-Za-z_][A-Za-z0-9_]*)(?:(:?[-+?])([^}]*))?\}|([A-Za-z_][A-Za-z0-9_]*))'
    )

    @staticmethod
    def interpolate(template: str,
                    context: Dict[str, str],
                    missing: Optional[List[str]] = None) -> str:
        """
        Interpolates environment variables in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: The environment variables context.
        :param missing: If given, names of unset variables that resolved to "" are appended to it.
        :return: The interpolated string.
        :raises KeyError: If a ${VAR:?error} or ${VAR?error} variable is not set.
        """
        def replace(match):
            if match.group(1):
                return '$'

            var_name = match.group(2) or match.group(5)
            modifier = match.group(3)
            alt_value = match.group(4) or ''
            value = context.get(var_name)

            if modifier == ':-':
                return value if value else alt_value
            if modifier == '-':
                return value if value is not None else alt_value
            if modifier == ':+':
                return alt_value if value else ''
            if modifier == '+':
                return alt_value if value is not None else ''
            if modifier in (':?', '?'):
                unset = not value if modifier == ':?' else value is None
                if unset:
                    raise KeyError(alt_value or f"Variable {var_name} is required")
                return value

            if value is None:
                # An unset variable resolves to an empty string
                if missing is not None:
                    missing.append(var_name)
                return ''
            return value

        return EnvironmentInterpolator.PATTERN.sub(replace, template)
