"""Show host classes used as Python types, including a Python-defined host subclass."""

import argparse
import logging
import math
import pathlib
import sys


def _ensure_src_path(src_path: str) -> None:
    """Ensure ``src`` is importable in the current interpreter.

    :param src_path: Absolute path to the repository ``src`` directory.
    """
    exists: bool = src_path in sys.path
    if exists is False:
        sys.path.insert(0, src_path)


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    :returns: Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Expose a small host class hierarchy and override a virtual method from Python.",
    )
    parser.add_argument("--side", type=float, default=3.0, help="Side length of the Python-defined square.")
    parser.add_argument("--radius", type=float, default=1.5, help="Radius of the host circle.")
    parser.add_argument("--verbose", action="store_true", help="Show bridge debug logging.")
    return parser.parse_args()


def _define_shapes(runtime: object) -> tuple[object, object]:
    """Define ``Shapes.Shape`` and ``Shapes.Circle`` in a fresh assembly.

    :param runtime: Host runtime receiving the assembly.
    :returns: Tuple of ``(shape, circle)`` host classes.
    """
    from hostbridge.host import HostParameter

    assembly = runtime.define_assembly("shapes")
    shape = assembly.define_class("Shape", namespace="Shapes")
    shape.add_field("name", runtime.string_class)
    shape.add_constructor((), lambda instance: instance.set_field("name", "shape"))
    shape.add_method("area", (), lambda target: 0.0, return_type=runtime.float_class, is_virtual=True)
    shape.add_method(
        "describe",
        (),
        lambda target: f"{target.get_field('name')}: area {target.invoke('area'):.3f}",
        return_type=runtime.string_class,
    )

    circle = assembly.define_class("Circle", namespace="Shapes", base=shape)
    circle.add_field("radius", runtime.float_class)

    def construct_circle(instance: object, radius: float) -> None:
        instance.set_field("name", "circle")
        instance.set_field("radius", radius)

    circle.add_constructor((HostParameter("radius", runtime.float_class),), construct_circle)
    circle.add_method(
        "area",
        (),
        lambda target: math.pi * target.get_field("radius") ** 2,
        return_type=runtime.float_class,
        is_virtual=True,
    )
    return shape, circle


def main() -> int:
    """Run the demonstration.

    :returns: Process exit code where ``0`` indicates success.
    """
    args: argparse.Namespace = _parse_args()
    if args.side <= 0 or args.radius <= 0:
        print("side and radius must be > 0")
        return 1
    if args.verbose is True:
        logging.basicConfig(level=logging.DEBUG)

    repo_root: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
    _ensure_src_path(str(repo_root / "src"))

    import hostbridge
    from hostbridge.host import HostRuntime

    runtime: HostRuntime = HostRuntime()
    shape_class, circle_class = _define_shapes(runtime)
    hostbridge.initialize(runtime)
    try:
        shape_type: type = hostbridge.expose(shape_class)
        circle_type: type = hostbridge.expose(circle_class)
        side: float = float(args.side)

        class Square(shape_type):
            """Host subclass defined in Python."""

            __namespace__ = "Demo"

            def __init__(self, side_length: float) -> None:
                """Initialize the Python part.

                :param side_length: Side length.
                """
                self.side_length = side_length

            def area(self) -> float:
                return self.side_length * self.side_length

        circle: object = circle_type(float(args.radius))
        square: object = Square(side)
        print(circle.describe())
        print(square.describe())
        print(f"isinstance(square, Shape)={isinstance(square, shape_type)}")
        print(f"issubclass(Circle, Shape)={issubclass(circle_type, shape_type)}")
        try:
            circle_type("wide")
        except TypeError as exc:
            print(f"rejected: {exc}")
    finally:
        hostbridge.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
