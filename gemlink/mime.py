"""MIME type parsing for the meta of successful responses."""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional


MIME_TYPE_RE = re.compile(r"([^/\s;]+)/([^\s;]+)")
DEFAULT_MIME_TYPE = "text/gemini"
DEFAULT_CHARSET = "utf-8"


@dataclass
class MimeType:
    main_type: str
    sub_type: str
    parameters: Dict[str, str] = field(default_factory=dict)

    @property
    def short(self) -> str:
        return f"{self.main_type}/{self.sub_type}"

    @property
    def charset(self) -> str:
        return self.parameters.get("charset", DEFAULT_CHARSET)

    @staticmethod
    def from_str(mime_string: str) -> Optional["MimeType"]:
        """Parse a MIME string into a MimeType instance, or None on error."""
        if ";" in mime_string:
            type_str, *parameters_strs = mime_string.split(";")
            parameters = {}
            for param_str in parameters_strs:
                param_str = param_str.strip()
                if not param_str:
                    continue
                if "=" not in param_str:
                    return None
                key, value = param_str.split("=", maxsplit=1)
                parameters[key.strip().lower()] = value.strip().strip('"')
        else:
            type_str = mime_string
            parameters = {}
        match = MIME_TYPE_RE.fullmatch(type_str.strip())
        if not match:
            return None
        main_type, sub_type = match.groups()
        return MimeType(main_type.lower(), sub_type.lower(), parameters)
