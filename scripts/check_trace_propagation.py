#!/usr/bin/env python3
"""Check that CEP lookups form a single trace across both services.

Reads line-delimited OTLP trace JSON, as written by the collector fileexporter
with `format: json`. Each line is a JSON object containing `resourceSpans`.

For every traceId it reports:
- which service.name values contributed spans
- whether the stage spans of the weather service are all present

A trace is "orphaned" when the weather service recorded spans but the gateway
did not; that means the trace context was lost on the hop between them.

Usage:
  python3 scripts/check_trace_propagation.py --file traces.json [--details]

Exit status is 1 when any orphaned trace is found.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

GATEWAY_SERVICE = "cep-gateway"
WEATHER_SERVICE = "cep-weather"
STAGE_SPANS = ("resolve location", "resolve coordinates", "resolve weather")


def _iter_scope_spans(resource_span: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    # OTLP JSON may be `scopeSpans` (new) or `instrumentationLibrarySpans` (old).
    if "scopeSpans" in resource_span:
        yield from (resource_span.get("scopeSpans") or [])
        return
    if "instrumentationLibrarySpans" in resource_span:
        yield from (resource_span.get("instrumentationLibrarySpans") or [])
        return


def _resource_attr(resource_span: Dict[str, Any], key: str) -> Optional[Any]:
    res = (resource_span.get("resource") or {})
    for a in res.get("attributes") or []:
        if a.get("key") != key:
            continue
        v = (a.get("value") or {})
        for k in ("stringValue", "boolValue", "intValue", "doubleValue"):
            if k in v:
                return v.get(k)
    return None


@dataclass
class TraceSummary:
    trace_id: str
    services: Set[str] = field(default_factory=set)
    span_names: Set[str] = field(default_factory=set)

    @property
    def orphaned(self) -> bool:
        return WEATHER_SERVICE in self.services and GATEWAY_SERVICE not in self.services

    @property
    def complete(self) -> bool:
        return (
            {GATEWAY_SERVICE, WEATHER_SERVICE} <= self.services
            and all(name in self.span_names for name in STAGE_SPANS)
        )


def summarize(lines: Iterable[str]) -> Dict[str, TraceSummary]:
    traces: Dict[str, TraceSummary] = {}
    for line in lines:
        line = line.strip()
        if not line:
            continue
        obj = json.loads(line)
        for rs in obj.get("resourceSpans") or []:
            service_name = _resource_attr(rs, "service.name") or "(unknown)"
            for ss in _iter_scope_spans(rs):
                for sp in (ss.get("spans") or []):
                    tid = sp.get("traceId")
                    if not tid:
                        continue
                    summary = traces.setdefault(tid, TraceSummary(trace_id=tid))
                    summary.services.add(service_name)
                    if sp.get("name"):
                        summary.span_names.add(sp["name"])
    return traces


def print_report(traces: Dict[str, TraceSummary], details: bool) -> None:
    complete = [t for t in traces.values() if t.complete]
    orphaned = [t for t in traces.values() if t.orphaned]
    print(f"traces: {len(traces)}")
    print(f"complete (gateway -> weather -> 3 stages): {len(complete)}")
    print(f"orphaned weather traces: {len(orphaned)}")

    if details:
        print()
        for t in sorted(traces.values(), key=lambda t: t.trace_id):
            flag = "ORPHAN" if t.orphaned else ("ok" if t.complete else "partial")
            services = ",".join(sorted(t.services))
            print(f"{t.trace_id}  {flag:8s}  {services}")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--file", required=True, help="Path to line-delimited OTLP trace JSON")
    ap.add_argument("--details", action="store_true", help="Print one line per trace")
    args = ap.parse_args(argv)

    text = Path(args.file).read_text(errors="replace")
    traces = summarize(text.splitlines())
    print_report(traces, args.details)

    return 1 if any(t.orphaned for t in traces.values()) else 0


if __name__ == "__main__":
    raise SystemExit(main())
