#!/usr/bin/env python3
"""
CMOD CLI - Command-line interface for Celestia model files.

Usage:
    cmod inspect --input model.cmod
    cmod convert --input model.glb --output model.cmod --format bin
    cmod convert --input model.cmod --output model_ascii.cmod --format ascii --scale 0.5
"""

import argparse
import logging
import sys

from cmod import __version__

TEXTURE_LABELS = [
    ("texture0", "Diffuse"),
    ("normalmap", "Normal"),
    ("specularmap", "Specular"),
    ("emissivemap", "Emissive"),
]


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _color(values) -> str:
    return ", ".join(f"{v:.3f}" for v in values)


def cmd_inspect(args):
    """Show information about a model file."""
    from cmod.convert import get_model_info

    path = args.input or args.model_file
    if not path:
        print("Error: no input file given", file=sys.stderr)
        return 1

    try:
        info = get_model_info(path)

        print(f"Model loaded: {info['path']}")
        print(f"Type: {info['kind']}")
        print(f"Meshes: {len(info['meshes'])}")
        print(f"Materials: {len(info['materials'])}")
        print("Animations: 0")
        print(f"Textures: {info['textures']}")

        for i, mesh in enumerate(info["meshes"]):
            print(f"\nMesh {i}:")
            print(f"  Vertices: {mesh['vertex_count']}")
            if "primitive_count" in mesh:
                print(f"  Primitives: {mesh['primitive_count']}")
            else:
                print(f"  Faces: {mesh['face_count']}")
            print(f"  Normals: {_yes_no(mesh['normals'])}")
            print(f"  Tangents: {_yes_no(mesh['tangents'])}")
            print(f"  UV0: {_yes_no(mesh['uv0'])}  UV1: {_yes_no(mesh['uv1'])}")
            print(f"  Colors0: {_yes_no(mesh['colors0'])}")
            print(f"  MaterialIndex: {', '.join(str(m) for m in mesh['material_indices'])}")
            if "descriptor" in mesh:
                print(f"  VertexDesc: {', '.join(mesh['descriptor'])}")

        for i, material in enumerate(info["materials"]):
            print(f"\nMaterial {i}:")
            print(f"  Diffuse: {_color(material['diffuse'])}")
            print(f"  Specular: {_color(material['specular'])}")
            print(f"  Emissive: {_color(material['emissive'])}")
            print(f"  Opacity: {material['opacity']:.3f}")
            print(f"  Shininess: {material['shininess']:.3f}")
            if "blend" in material:
                print(f"  Blend: {material['blend']}")
            textures = material["textures"]
            if textures:
                for keyword, label in TEXTURE_LABELS:
                    if keyword in textures:
                        print(f"  Tex({label}): {textures[keyword]}")
            else:
                print("  Textures: (none)")

        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_convert(args):
    """Convert a model file to ASCII or binary CMOD."""
    from cmod.convert import convert_model

    try:
        result = convert_model(
            input_path=args.input,
            output_path=args.output,
            target_format=args.format,
            scale=args.scale,
        )
        print(f"Converted: {args.input} -> {result} ({args.format}, scale={args.scale})")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmod",
        description="CMOD CLI - Inspect and convert Celestia model files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cmod inspect --input model.cmod
  cmod convert --input model.glb --output model.cmod --format bin
  cmod convert --input model.cmod --output model_ascii.cmod --format ascii
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # inspect
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show information about a model file",
    )
    inspect_parser.add_argument("model_file", nargs="?", help="Path to model file")
    inspect_parser.add_argument("--input", "-i", help="Path to model file")
    inspect_parser.set_defaults(func=cmd_inspect)

    # convert
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a model to ASCII or binary CMOD",
    )
    convert_parser.add_argument("--input", "-i", required=True, help="Input model (CMOD or any trimesh format)")
    convert_parser.add_argument("--output", "-o", required=True, help="Output .cmod file")
    convert_parser.add_argument(
        "--format", "-f",
        required=True,
        choices=["ascii", "bin", "binary"],
        help="Output encoding",
    )
    convert_parser.add_argument("--scale", type=float, default=1.0, help="Position scale factor (default: 1.0)")
    convert_parser.set_defaults(func=cmd_convert)

    return parser


def main(argv=None):
    from cmod.logging_config import setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
