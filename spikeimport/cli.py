"""Command line entry point: ``spikeimport BASEPATH [options]``."""

import argparse
import json
import logging
import sys

from spikeimport.config import ImportConfiguration, UnitFilter
from spikeimport.core import SpikeImporter
from spikeimport.errors import SpikeImportError
from spikeimport.formats import available_formats
from spikeimport.metadata import SessionMetadata

logger = logging.getLogger("spikeimport")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Import spike sorting output into a spike collection.')

    # Input location
    parser.add_argument('basepath', type=str, help='Session folder')
    parser.add_argument('--format', type=str, default=None,
                        help=f"Sorter output format (default: from session, else phy). Known: {', '.join(available_formats())}")
    parser.add_argument('--clustering-path', type=str, default=None,
                        help='Sorter output folder, relative to the session folder')
    parser.add_argument('--basename', type=str, default=None,
                        help='Session basename (default: session name or folder name)')
    parser.add_argument('--session', type=str, default=None,
                        help='JSON file with session metadata (sr, n_channels, electrode_groups, ...)')

    # Import settings
    parser.add_argument('--labels', nargs='+', default=['good'],
                        help='Cluster labels to import from phy label tables (default: good)')
    parser.add_argument('--force-reload', action='store_true', help='Ignore a persisted collection')
    parser.add_argument('--no-save', action='store_true', help='Do not persist the collection')

    # Unit filter
    parser.add_argument('--uid', type=int, nargs='+', default=None, help='Keep only these uids')
    parser.add_argument('--shank-id', type=int, nargs='+', default=None, help='Keep only these shanks')
    parser.add_argument('--clu-id', type=int, nargs='+', default=None, help='Keep only these cluster ids')
    parser.add_argument('--region', type=str, nargs='+', default=None, help='Keep only these regions')

    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser.parse_args(argv)


def load_session(path):
    with open(path) as f:
        return SessionMetadata.from_dict(json.load(f))


def create_config_from_args(args) -> ImportConfiguration:
    """Create ImportConfiguration from command line arguments."""
    return ImportConfiguration(
        basepath=args.basepath,
        clustering_path=args.clustering_path,
        basename=args.basename,
        format=args.format,
        labels_to_include=tuple(args.labels),
        save_output=not args.no_save,
        force_reload=args.force_reload,
        session_metadata=load_session(args.session) if args.session else None,
        unit_filter=UnitFilter(uid=args.uid, shank_id=args.shank_id, clu_id=args.clu_id, region=args.region),
    )


def main(argv=None) -> int:
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        config = create_config_from_args(args)
        collection = SpikeImporter(config).run()
    except (SpikeImportError, OSError, ValueError) as e:
        logger.error(f"Import failed: {e}")
        return 1

    print("\nSpike Collection Summary:")
    for key, value in collection.summary().items():
        print(f"  {key}: {value}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
