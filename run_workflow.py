#!/usr/bin/env python3
"""
HydroBasin command line

    hydrobasin delineate AOI [--out-dir DIR] [--dem-zoom Z] [--pour-pt FILE | --pour-xy X Y]
                             [--snap-dist D] [--output FILE] [--config FILE] [--verbose]
    hydrobasin runoff BASIN START END [--ppt-var V] [--aet-var V] [--save-csv FILE]
                             [--plot PNG] [--config FILE] [--verbose]
    hydrobasin init-config FILE

Exits with status 1 and the error message on any workflow error.
"""

import argparse
import sys
from pathlib import Path

import geopandas as gpd
from shapely.geometry import Point

from infrastructure.configuration_manager import ConfigurationManager, HydroBasinConfig
from infrastructure.exceptions import HydroBasinError
from clients.visualization_clients.plotting_client import PlottingClient
from workflows.basin_delineation import delineate_basin
from workflows.water_balance import calculate_runoff


def load_config(path) -> HydroBasinConfig:
    if path is None:
        return HydroBasinConfig()
    manager = ConfigurationManager(config_format=ConfigurationManager.format_for(path))
    return manager.load(path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='hydrobasin', description='Basin delineation and monthly water balance')
    subparsers = parser.add_subparsers(dest='command', required=True)

    delineate = subparsers.add_parser('delineate', help='Delineate a basin from an AOI and an outlet')
    delineate.add_argument('aoi', type=str, help='Area of interest polygon file')
    delineate.add_argument('--out-dir', type=str, help='Working directory (default: basin_work)')
    delineate.add_argument('--dem-zoom', type=int, help='Elevation tile zoom 0-14 (default: 12)')
    outlet = delineate.add_mutually_exclusive_group()
    outlet.add_argument('--pour-pt', type=str, help='Pour point vector file; omit to pick interactively')
    outlet.add_argument('--pour-xy', type=float, nargs=2, metavar=('X', 'Y'),
                        help='Pour point coordinates in --pour-crs')
    delineate.add_argument('--pour-crs', type=str, help='CRS of --pour-xy (default: DEM CRS)')
    delineate.add_argument('--snap-dist', type=float, help='Snap distance in map units, 0 disables (default: 500)')
    delineate.add_argument('--streams', type=str, help='Existing stream network to burn into the DEM')
    delineate.add_argument('--output', type=str, help='Write the basin polygon to this vector file')
    delineate.add_argument('--config', type=str, help='YAML or JSON configuration file')
    delineate.add_argument('--verbose', action='store_true', help='Log progress and tool output')

    runoff = subparsers.add_parser('runoff', help='Monthly PPT, AET and runoff volumes for a basin')
    runoff.add_argument('basin', type=str, help='Basin polygon file')
    runoff.add_argument('start_date', type=str, help='First day, YYYY-MM-DD')
    runoff.add_argument('end_date', type=str, help='Last day, YYYY-MM-DD')
    runoff.add_argument('--ppt-var', type=str, help='Precipitation variable (default: ppt)')
    runoff.add_argument('--aet-var', type=str, help='Evapotranspiration variable (default: aet)')
    runoff.add_argument('--save-csv', type=str, help='Write the monthly table to this CSV')
    runoff.add_argument('--plot', type=str, help='Save a chart of the monthly volumes to this image')
    runoff.add_argument('--config', type=str, help='YAML or JSON configuration file')
    runoff.add_argument('--verbose', action='store_true', help='Log progress')

    init = subparsers.add_parser('init-config', help='Write a default configuration file')
    init.add_argument('path', type=str, help='Output YAML or JSON file')

    return parser


def run_delineate(args) -> int:
    config = load_config(args.config).delineation
    if args.out_dir is not None:
        config.out_dir = args.out_dir
    if args.dem_zoom is not None:
        config.dem_zoom = args.dem_zoom
    if args.snap_dist is not None:
        config.snap_dist = args.snap_dist
    if args.verbose:
        config.quiet = False

    pour_pt = args.pour_pt
    if args.pour_xy is not None:
        pour_pt = gpd.GeoDataFrame(geometry=[Point(*args.pour_xy)], crs=args.pour_crs)

    basin = delineate_basin(args.aoi, pour_pt=pour_pt, config=config, streams=args.streams)

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        basin.to_file(output)
        print(f"Basin written to: {output}")
    else:
        print(basin.to_json())
    return 0


def run_runoff(args) -> int:
    config = load_config(args.config).water_balance
    if args.ppt_var is not None:
        config.ppt_var = args.ppt_var
    if args.aet_var is not None:
        config.aet_var = args.aet_var
    if args.verbose:
        config.quiet = False

    result = calculate_runoff(args.basin, args.start_date, args.end_date,
                              save_csv=args.save_csv, return_plot=args.plot is not None, config=config)

    if args.plot is not None:
        data = result.data
        plotting = PlottingClient()
        plotting.save_figure(result.plot, Path(args.plot))
        plotting.close(result.plot)
        print(f"Chart written to: {args.plot}")
    else:
        data = result

    if args.save_csv:
        print(f"Water balance written to: {args.save_csv}")
    else:
        print(data.to_csv(index=False, date_format='%Y-%m-%d'), end='')
    return 0


def run_init_config(args) -> int:
    manager = ConfigurationManager(config_format=ConfigurationManager.format_for(args.path))
    output = manager.save(manager.create_default_config(), args.path)
    print(f"Configuration written to: {output}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    handlers = {
        'delineate': run_delineate,
        'runoff': run_runoff,
        'init-config': run_init_config,
    }
    try:
        return handlers[args.command](args)
    except HydroBasinError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
