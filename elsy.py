#!/usr/bin/env python3
"""elsy.py

Plane curves from Lindenmayer-system grammars.

A grammar (rule table, seed, turn angle) is rewritten for a number of
generations, and the resulting symbol string is walked by a turtle that
records its pen position into one or more polylines together with the
bounding box of every visited point.

Turtle alphabet (case-sensitive):
  f   move forward one unit
  +   turn by +angle
  -   turn by -angle
  [   save position and heading
  ]   close the current polyline and restore the last saved state
Any other symbol is a no-op for the turtle and only serves the rewriting.

Run:
  python elsy.py render config.json output.svg
  python elsy.py preset dragon dragon.svg --iterations 12
  python elsy.py presets
  python elsy.py --help
"""

from __future__ import annotations

import argparse
import json
import math
import os
import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, cast

Point = tuple[float, float]
Path = list[Point]


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


class StructureError(ValueError):
    """A `]` was read while no `[` state was saved."""

    def __init__(self, index: int) -> None:
        super().__init__(f"']' at position {index} has no matching '['")
        self.index = index


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_bool(x: Any, path: str) -> bool:
    _require(isinstance(x, bool), f"{path} must be a boolean")
    return cast(bool, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


# -------------------------
# Grammar model
# -------------------------


@dataclass(frozen=True)
class Grammar:
    """An L-system: rule table, seed string and turn angle in degrees.

    `iterations` and `name` are optional defaults used by presets and
    configs. Build a new Grammar (e.g. with `dataclasses.replace`) rather
    than editing one.
    """

    rules: Mapping[str, str]
    seed: str
    angle: float
    iterations: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    # mappingproxy is neither hashable nor picklable; both go through a
    # plain copy of the rule table.
    def __hash__(self) -> int:
        return hash(
            (
                tuple(sorted(self.rules.items())),
                self.seed,
                self.angle,
                self.iterations,
                self.name,
            )
        )

    def __reduce__(self) -> tuple[Any, ...]:
        return (
            type(self),
            (dict(self.rules), self.seed, self.angle, self.iterations, self.name),
        )


@dataclass(frozen=True)
class TurtleState:
    x: float
    y: float
    heading: float  # radians


@dataclass(frozen=True)
class BoundingBox:
    min_x: float = 0.0
    max_x: float = 0.0
    min_y: float = 0.0
    max_y: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def contains(self, p: Point) -> bool:
        x, y = p
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


@dataclass(frozen=True)
class Drawing:
    paths: list[Path]
    bounds: BoundingBox
    turtle: TurtleState = field(default_factory=lambda: TurtleState(0.0, 0.0, 0.0))


# -------------------------
# Expansion
# -------------------------

DEFAULT_MAX_SYMBOLS = 1_000_000


def expand_once(rules: Mapping[str, str], symbols: str) -> str:
    """Apply one generation of `rules` to every symbol of `symbols`."""
    return "".join([rules.get(ch, ch) for ch in symbols])


def expand(grammar: Grammar, iterations: int) -> str:
    """Rewrite the grammar's seed `iterations` times.

    Growth is not bounded here; use `expand_limited` when the grammar
    comes from user input.
    """
    _require(iterations >= 0, "iterations must be >= 0")

    s = grammar.seed
    for _ in range(iterations):
        s = expand_once(grammar.rules, s)
    return s


def expand_limited(
    grammar: Grammar, iterations: int, max_symbols: int = DEFAULT_MAX_SYMBOLS
) -> str:
    """Like `expand`, but raise ConfigError once a generation outgrows
    `max_symbols`."""
    _require(iterations >= 0, "iterations must be >= 0")
    _require(max_symbols > 0, "max_symbols must be > 0")

    s = grammar.seed
    for generation in range(1, iterations + 1):
        s = expand_once(grammar.rules, s)
        _require(
            len(s) <= max_symbols,
            f"expansion exceeds {max_symbols} symbols at generation {generation} "
            f"of {iterations}; lower the iteration count",
        )
    return s


# -------------------------
# Turtle interpreter
# -------------------------


def interpret(symbols: Iterable[str], angle: float) -> Drawing:
    """Walk `symbols` with a unit-step turtle turning by `angle` degrees.

    The pen position is appended to the current path before every symbol
    is applied, control symbols included. `]` closes the current path and
    restores the last saved state; a `]` with nothing saved raises
    StructureError. A path still open at the end receives the final pen
    position and is emitted. Unclosed `[` are discarded.

    The bounding box starts at the origin and grows with every `f`.
    """
    turn = math.radians(angle)
    x = y = heading = 0.0
    min_x = max_x = min_y = max_y = 0.0

    stack: list[TurtleState] = []
    paths: list[Path] = []
    current: Path = []

    for index, sym in enumerate(symbols):
        current.append((x, y))

        if sym == "[":
            stack.append(TurtleState(x, y, heading))
        elif sym == "]":
            if not stack:
                raise StructureError(index)
            paths.append(current)
            current = []
            st = stack.pop()
            x, y, heading = st.x, st.y, st.heading
        elif sym == "-":
            heading -= turn
        elif sym == "+":
            heading += turn
        elif sym == "f":
            x += math.cos(heading)
            y += math.sin(heading)
            if x < min_x:
                min_x = x
            if x > max_x:
                max_x = x
            if y < min_y:
                min_y = y
            if y > max_y:
                max_y = y

    if current:
        current.append((x, y))
        paths.append(current)

    return Drawing(
        paths=paths,
        bounds=BoundingBox(min_x, max_x, min_y, max_y),
        turtle=TurtleState(x, y, heading),
    )


def generate(
    grammar: Grammar, iterations: int | None = None, max_symbols: int | None = None
) -> Drawing:
    """Expand and interpret in one go, using the grammar's default
    iteration count when none is given. With `max_symbols` the expansion
    is bounded as in `expand_limited`."""
    if iterations is None:
        iterations = grammar.iterations or 0
    if max_symbols is None:
        symbols = expand(grammar, iterations)
    else:
        symbols = expand_limited(grammar, iterations, max_symbols)
    return interpret(symbols, grammar.angle)


# -------------------------
# Rule text
# -------------------------

_ARROW = re.compile(r"\s*->\s*")


def parse_rules(text: str) -> dict[str, str]:
    """Parse `symbol -> replacement` lines into a rule table.

    Blank lines and `#` comments are skipped. An empty replacement erases
    the symbol. A later line for the same symbol wins.
    """
    rules: dict[str, str] = {}

    for line_no, raw in enumerate(text.splitlines(), start=1):
        s = raw.strip()
        if not s or s.startswith("#"):
            continue
        parts = _ARROW.split(s, maxsplit=1)
        _require(len(parts) == 2, f"rule line {line_no}: missing '->' in {raw!r}")
        lhs, rhs = parts
        _require(
            len(lhs) == 1,
            f"rule line {line_no}: left side must be a single symbol, got {lhs!r}",
        )
        rules[lhs] = rhs
    return rules


def format_rules(rules: Mapping[str, str]) -> str:
    return "\n".join(f"{k} -> {v}" for k, v in rules.items())


# -------------------------
# Presets
# -------------------------

PRESETS: dict[str, Grammar] = {
    "koch": Grammar(
        rules={"f": "f+f-f-f+f"},
        seed="f",
        angle=90,
        iterations=4,
        name="Koch curve",
    ),
    "koch-island": Grammar(
        rules={"f": "f+f-f-ff+f+f-f"},
        seed="f+f+f+f",
        angle=90,
        iterations=2,
        name="Quadratic Koch island",
    ),
    "dragon": Grammar(
        rules={"x": "x+yf+", "y": "-fx-y"},
        seed="fx",
        angle=90,
        iterations=10,
        name="Dragon curve",
    ),
    "hilbert": Grammar(
        rules={"a": "+bf-afa-fb+", "b": "-af+bfb+fa-"},
        seed="a",
        angle=90,
        iterations=5,
        name="Hilbert curve",
    ),
    "levy": Grammar(
        rules={"f": "+f--f+"},
        seed="f",
        angle=45,
        iterations=10,
        name="Levy C curve",
    ),
    "plant": Grammar(
        rules={"x": "f+[[x]-x]-f[-fx]+x", "f": "ff"},
        seed="x",
        angle=25,
        iterations=5,
        name="Fractal plant",
    ),
}


def get_preset(key: str) -> Grammar:
    try:
        return PRESETS[key]
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        raise ConfigError(f"unknown preset {key!r} (known: {known})") from None


# -------------------------
# SVG writing
# -------------------------


@dataclass(frozen=True)
class SvgStyle:
    stroke: str = "#000"
    stroke_width: float = 1.0
    fill: str = "none"
    stroke_linecap: str = "round"
    stroke_linejoin: str = "round"


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def scale_factors(bounds: BoundingBox, width: float, height: float) -> Point:
    """Per-axis scale mapping `bounds` onto a `width` x `height` surface.

    An axis with zero extent keeps scale 1.0 so that straight or
    single-point drawings still map to finite coordinates.
    """
    sx = width / bounds.width if bounds.width > 0 else 1.0
    sy = height / bounds.height if bounds.height > 0 else 1.0
    return sx, sy


def to_device(
    paths: list[Path],
    bounds: BoundingBox,
    *,
    width: float,
    height: float,
    margin: float = 0.0,
    flip_y: bool = False,
) -> list[Path]:
    inner_w = width - 2 * margin
    inner_h = height - 2 * margin
    _require(inner_w > 0 and inner_h > 0, "svg.margin leaves no room to draw")

    sx, sy = scale_factors(bounds, inner_w, inner_h)
    out: list[Path] = []
    for pl in paths:
        if flip_y:
            out.append(
                [
                    (margin + (x - bounds.min_x) * sx, margin + (bounds.max_y - y) * sy)
                    for x, y in pl
                ]
            )
        else:
            out.append(
                [
                    (margin + (x - bounds.min_x) * sx, margin + (y - bounds.min_y) * sy)
                    for x, y in pl
                ]
            )
    return out


def _fmt(x: float, precision: int) -> str:
    # Normalise -0.0 so it never produces "-0" in SVG output.
    if not x:
        x = 0.0
    s = f"{x:.{precision}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s == "-0":
        s = "0"
    return s or "0"


def write_svg(
    drawing: Drawing,
    *,
    out_path: str,
    width: float,
    height: float,
    margin: float,
    precision: int,
    flip_y: bool,
    style: SvgStyle,
    background: str | None,
    title: str | None = None,
) -> None:
    _require(len(drawing.paths) > 0, "No drawable geometry produced.")

    polylines = to_device(
        drawing.paths,
        drawing.bounds,
        width=width,
        height=height,
        margin=margin,
        flip_y=flip_y,
    )

    w = _fmt(width, precision)
    h = _fmt(height, precision)

    lines: list[str] = []
    lines.append('<?xml version="1.0" encoding="UTF-8"?>')
    lines.append(
        "<svg xmlns=\"http://www.w3.org/2000/svg\" version=\"1.1\" "
        f"viewBox=\"0 0 {w} {h}\" width=\"{w}\" height=\"{h}\">"
    )

    if title:
        safe_title = (
            title.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        )
        lines.append(f"  <title>{safe_title}</title>")

    if background and background.lower() != "none":
        lines.append(
            f'  <rect x="0" y="0" width="{w}" height="{h}" fill="{background}" />'
        )

    style_attr = (
        f'stroke="{style.stroke}" stroke-width="{_fmt(style.stroke_width, precision)}" '
        f'fill="{style.fill}" stroke-linecap="{style.stroke_linecap}" '
        f'stroke-linejoin="{style.stroke_linejoin}"'
    )

    for pl in polylines:
        pts = " ".join(f"{_fmt(x, precision)},{_fmt(y, precision)}" for x, y in pl)
        lines.append(f'  <polyline points="{pts}" {style_attr} />')

    lines.append("</svg>")

    _ensure_parent_dir(out_path)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
        f.write("\n")


# -------------------------
# Config parsing
# -------------------------


@dataclass(frozen=True)
class RenderConfig:
    grammar: Grammar

    # svg
    width: float
    height: float
    margin: float
    precision: int
    flip_y: bool
    style: SvgStyle
    background: str | None

    @property
    def name(self) -> str:
        return self.grammar.name or "L-System"

    @property
    def iterations(self) -> int:
        return self.grammar.iterations or 0


def _parse_rules_field(x: Any, path: str) -> dict[str, str]:
    if isinstance(x, str):
        return parse_rules(x)
    if isinstance(x, list):
        lines = [_as_str(v, f"{path}[{i}]") for i, v in enumerate(x)]
        return parse_rules("\n".join(lines))

    rules_obj = _as_dict(x, path)
    rules: dict[str, str] = {}
    for k, v in rules_obj.items():
        _require(
            isinstance(k, str) and len(k) == 1,
            f"{path} keys must be single-character strings",
        )
        rules[k] = _as_str(v, f"{path}['{k}']")
    return rules


def parse_config(obj: dict[str, Any]) -> RenderConfig:
    obj = _as_dict(obj, "root")

    base: Grammar | None = None
    if "preset" in obj:
        base = get_preset(_as_str(obj["preset"], "preset"))

    default_name = base.name if base and base.name else "L-System"
    name = _as_str(obj.get("name", default_name), "name")

    if "seed" in obj:
        seed = _as_str(obj["seed"], "seed")
    else:
        _require(base is not None, "seed is required unless a preset is given")
        seed = cast(Grammar, base).seed
    _require(len(seed) > 0, "seed must be non-empty")

    if "rules" in obj:
        rules = _parse_rules_field(obj["rules"], "rules")
    else:
        rules = dict(base.rules) if base else {}

    angle = _as_float(obj.get("angle", base.angle if base else 90), "angle")

    default_iterations = base.iterations if base and base.iterations is not None else 0
    iterations = _as_int(obj.get("iterations", default_iterations), "iterations")
    _require(iterations >= 0, "iterations must be >= 0")

    svg = _as_dict(obj.get("svg", {}), "svg")
    width = _as_float(svg.get("width", 800), "svg.width")
    height = _as_float(svg.get("height", 600), "svg.height")
    _require(width > 0, "svg.width must be > 0")
    _require(height > 0, "svg.height must be > 0")
    margin = _as_float(svg.get("margin", 10), "svg.margin")
    _require(margin >= 0, "svg.margin must be >= 0")
    precision = _as_int(svg.get("precision", 3), "svg.precision")
    _require(0 <= precision <= 10, "svg.precision must be between 0 and 10")
    flip_y = _as_bool(svg.get("flip_y", True), "svg.flip_y")

    style_obj = _as_dict(svg.get("style", {}), "svg.style")
    style = SvgStyle(
        stroke=_as_str(style_obj.get("stroke", "#000"), "svg.style.stroke"),
        stroke_width=_as_float(
            style_obj.get("stroke_width", 1.0), "svg.style.stroke_width"
        ),
        fill=_as_str(style_obj.get("fill", "none"), "svg.style.fill"),
        stroke_linecap=_as_str(
            style_obj.get("stroke_linecap", "round"), "svg.style.stroke_linecap"
        ),
        stroke_linejoin=_as_str(
            style_obj.get("stroke_linejoin", "round"), "svg.style.stroke_linejoin"
        ),
    )

    background = svg.get("background")
    if background is not None:
        background = _as_str(background, "svg.background")

    grammar = Grammar(
        rules=rules, seed=seed, angle=angle, iterations=iterations, name=name
    )
    return RenderConfig(
        grammar=grammar,
        width=width,
        height=height,
        margin=margin,
        precision=precision,
        flip_y=flip_y,
        style=style,
        background=background,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"{path} is not valid UTF-8: {e}") from e


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
INPUT JSON SYNTAX (render, expand, validate)

  name: string (optional)
      A human-readable title; written into the SVG <title>.

  preset: string (optional)
      Start from a built-in grammar (see `presets`). Keys given alongside
      it override the preset's values.

  seed: string (required unless preset is given)
      The initial word.

  rules: rule table (optional)
      Either an object {"f": "f+f-f-f+f"}, a string of lines
      "f -> f+f-f-f+f", or a list of such lines. Symbols without a rule
      rewrite to themselves.

  angle: number, degrees (default 90)

  iterations: integer >= 0 (default: preset's, else 0)
      Number of rewriting generations. 0 is not rendered.

  svg: object (optional)
      width / height (default 800 x 600), margin (default 10),
      precision 0..10 (default 3), flip_y (default true),
      background (optional color), style {stroke, stroke_width, fill,
      stroke_linecap, stroke_linejoin}.

TURTLE ALPHABET

  f  forward one unit      +  turn +angle      -  turn -angle
  [  save state            ]  new stroke, restore saved state
  anything else is ignored by the turtle

Example (Koch curve):

    {"seed": "f", "rules": "f -> f+f-f-f+f", "angle": 90, "iterations": 3}
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="elsy",
        description="L-system curve generator that outputs SVG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser("render", help="Render a JSON config to an SVG file.")
    pr.add_argument("config", help="Path to the input JSON config.")
    pr.add_argument("output", help="Path to write the SVG output.")
    pr.add_argument(
        "--iterations", type=int, default=None, help="Override config iterations."
    )
    pr.add_argument(
        "--max-symbols",
        type=int,
        default=DEFAULT_MAX_SYMBOLS,
        help=f"Refuse expansions longer than this (default {DEFAULT_MAX_SYMBOLS}).",
    )

    pp = sub.add_parser("preset", help="Render a built-in grammar to an SVG file.")
    pp.add_argument("name", help="Preset key, see `presets`.")
    pp.add_argument("output", help="Path to write the SVG output.")
    pp.add_argument(
        "--iterations", type=int, default=None, help="Override preset iterations."
    )
    pp.add_argument("--width", type=float, default=800, help="SVG width.")
    pp.add_argument("--height", type=float, default=600, help="SVG height.")
    pp.add_argument(
        "--max-symbols",
        type=int,
        default=DEFAULT_MAX_SYMBOLS,
        help=f"Refuse expansions longer than this (default {DEFAULT_MAX_SYMBOLS}).",
    )

    sub.add_parser("presets", help="List built-in grammars.")

    pe = sub.add_parser("expand", help="Print the expanded symbol string.")
    pe.add_argument("config", help="Path to the input JSON config.")
    pe.add_argument(
        "--iterations", type=int, default=None, help="Override config iterations."
    )

    pv = sub.add_parser(
        "validate", help="Validate a JSON config and print a brief summary."
    )
    pv.add_argument("config", help="Path to the input JSON config.")

    return p


# -------------------------
# Commands
# -------------------------


def _with_iterations(cfg: RenderConfig, iterations: int | None) -> RenderConfig:
    if iterations is None:
        return cfg
    return replace(cfg, grammar=replace(cfg.grammar, iterations=iterations))


def _render(cfg: RenderConfig, output_path: str, max_symbols: int) -> int:
    if cfg.iterations <= 0:
        print(
            f"Nothing rendered: iterations is {cfg.iterations}, need at least 1",
            file=sys.stderr,
        )
        return 1

    drawing = generate(cfg.grammar, max_symbols=max_symbols)

    write_svg(
        drawing,
        out_path=output_path,
        width=cfg.width,
        height=cfg.height,
        margin=cfg.margin,
        precision=cfg.precision,
        flip_y=cfg.flip_y,
        style=cfg.style,
        background=cfg.background,
        title=cfg.name,
    )
    return 0


def cmd_render(
    config_path: str, output_path: str, iterations: int | None, max_symbols: int
) -> int:
    cfg = _with_iterations(parse_config(load_json(config_path)), iterations)
    return _render(cfg, output_path, max_symbols)


def cmd_preset(
    name: str,
    output_path: str,
    iterations: int | None,
    width: float,
    height: float,
    max_symbols: int,
) -> int:
    cfg = parse_config({"preset": name, "svg": {"width": width, "height": height}})
    return _render(_with_iterations(cfg, iterations), output_path, max_symbols)


def cmd_presets() -> int:
    for key, g in PRESETS.items():
        print(f"{key}: {g.name} (angle={g.angle:g}, iterations={g.iterations})")
    return 0


def cmd_expand(config_path: str, iterations: int | None) -> int:
    cfg = _with_iterations(parse_config(load_json(config_path)), iterations)
    print(expand_limited(cfg.grammar, cfg.iterations))
    return 0


def cmd_validate(config_path: str) -> int:
    cfg = parse_config(load_json(config_path))
    g = cfg.grammar

    print(f"name: {cfg.name}")
    print(f"seed length: {len(g.seed)}")
    print(f"iterations: {cfg.iterations}")
    print(f"rules: {len(g.rules)}")
    for line in format_rules(g.rules).splitlines():
        print(f"  {line}")
    print(f"angle: {g.angle:g}")
    print(
        f"svg: {cfg.width:g}x{cfg.height:g} margin={cfg.margin:g} "
        f"precision={cfg.precision} flip_y={cfg.flip_y}"
    )

    symbols = expand_limited(g, cfg.iterations)
    drawing = interpret(symbols, g.angle)
    b = drawing.bounds
    print(f"symbols: {len(symbols)}")
    print(f"paths: {len(drawing.paths)}")
    print(f"bounds: x=[{b.min_x:g}, {b.max_x:g}] y=[{b.min_y:g}, {b.max_y:g}]")
    if not drawing.paths:
        raise ConfigError("Config produces no drawable geometry")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    try:
        if args.cmd == "render":
            return cmd_render(
                args.config, args.output, args.iterations, args.max_symbols
            )
        elif args.cmd == "preset":
            return cmd_preset(
                args.name,
                args.output,
                args.iterations,
                args.width,
                args.height,
                args.max_symbols,
            )
        elif args.cmd == "presets":
            return cmd_presets()
        elif args.cmd == "expand":
            return cmd_expand(args.config, args.iterations)
        elif args.cmd == "validate":
            return cmd_validate(args.config)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except StructureError as e:
        print(f"Structure error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
