#!/usr/bin/env python3
"""
Output Formatting Module for the nftmeta CLI

Renders command results as tables, JSON, YAML or CSV.
"""

import csv
import io
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml
from tabulate import tabulate


class OutputFormatter:
    """Universal output formatter for CLI results."""

    def __init__(self, format_type: str = 'table', max_width: Optional[int] = None):
        self.format_type = format_type
        self.max_width = max_width or 120

    def format(self, data: Any, headers: Optional[List[str]] = None) -> str:
        if self.format_type == 'json':
            return self.format_json(data)
        elif self.format_type == 'yaml':
            return self.format_yaml(data)
        elif self.format_type == 'csv':
            return self.format_csv(data, headers)
        return self.format_table(data, headers)

    def format_json(self, data: Any) -> str:
        return json.dumps(data, indent=2, default=self._json_encoder)

    def format_yaml(self, data: Any) -> str:
        return yaml.safe_dump(json.loads(self.format_json(data)),
                              default_flow_style=False, sort_keys=False)

    def format_csv(self, data: Any, headers: Optional[List[str]] = None) -> str:
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not data:
            return ""

        rows = [
            self._flatten_dict(item) if isinstance(item, dict) else {'value': str(item)}
            for item in data
        ]
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=headers or list(rows[0].keys()),
                                extrasaction='ignore')
        writer.writeheader()
        writer.writerows(rows)
        return output.getvalue().strip()

    def format_table(self, data: Any, headers: Optional[List[str]] = None) -> str:
        if isinstance(data, dict):
            return tabulate([[k, self._format_value(v)] for k, v in data.items()], tablefmt='plain')
        if isinstance(data, list):
            if not data:
                return "No data available"
            if isinstance(data[0], dict):
                headers = headers or list(data[0].keys())
                rows = [[self._format_value(item.get(h, '')) for h in headers] for item in data]
                return tabulate(rows, headers=headers, tablefmt='grid')
            return '\n'.join(str(item) for item in data)
        return str(data)

    def _format_value(self, value: Any) -> str:
        if value is None:
            return '-'
        if isinstance(value, bool):
            return 'yes' if value else 'no'
        if isinstance(value, datetime):
            return value.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(value, (list, tuple)):
            return ', '.join(str(v) for v in value)
        if isinstance(value, dict):
            return json.dumps(value, default=self._json_encoder)
        text = str(value)
        if len(text) > self.max_width:
            text = text[:self.max_width - 3] + '...'
        return text

    def _flatten_dict(self, data: Dict[str, Any], prefix: str = '') -> Dict[str, Any]:
        flat: Dict[str, Any] = {}
        for key, value in data.items():
            name = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, dict):
                flat.update(self._flatten_dict(value, name))
            elif isinstance(value, (list, tuple)):
                flat[name] = ';'.join(str(v) for v in value)
            else:
                flat[name] = value
        return flat

    @staticmethod
    def _json_encoder(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.hex()
        return str(obj)
