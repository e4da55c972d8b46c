from __future__ import annotations

from ansi_optimizer.settings import SchemaDict

SCHEMA: list[SchemaDict] = [
    {
        "key": "optimizer",
        "title": "Optimizer",
        "help": "Rewrites applied to runs of control sequences.",
        "type": "object",
        "fields": [
            {
                "key": "fold_cursor",
                "title": "Fold cursor motion",
                "help": "Combine consecutive cursor movements in to a single move.",
                "type": "boolean",
                "default": True,
            },
            {
                "key": "collapse_erase",
                "title": "Collapse erases",
                "help": "Drop an erase that repeats one that is still in effect.",
                "type": "boolean",
                "default": True,
            },
            {
                "key": "max_sgr_parameters",
                "title": "Maximum SGR parameters",
                "help": "Most parameters to pack in to one SGR sequence.",
                "type": "integer",
                "default": 16,
                "validate": [{"type": "minimum", "value": 1}],
            },
        ],
    },
    {
        "key": "input",
        "title": "Input",
        "type": "object",
        "fields": [
            {
                "key": "chunk_size",
                "title": "Chunk size",
                "help": "Bytes read from a file at a time.",
                "type": "integer",
                "default": 64 * 1024,
                "validate": [{"type": "minimum", "value": 1}],
            },
            {
                "key": "buffer_duration",
                "title": "Buffer duration",
                "help": "Milliseconds to gather process output before optimizing it.",
                "type": "integer",
                "default": 10,
                "validate": [{"type": "minimum", "value": 0}],
            },
        ],
    },
    {
        "key": "diagnostics",
        "title": "Diagnostics",
        "type": "object",
        "fields": [
            {
                "key": "report_unrecognized",
                "title": "Report unrecognized sequences",
                "help": "Log well formed sequences that are passed through verbatim.",
                "type": "boolean",
                "default": True,
            },
        ],
    },
]
