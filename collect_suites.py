#!/usr/bin/env python3
"""
Suite Collection Script

Collects the suite tree and test cases of a test-management project and prints
a hierarchy-aware view: the suite tree, the root-to-suite path of a suite, or
every test case under a suite (directly or through its root suite).
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from collection import CaseAggregator, CollectionStats, SuiteSnapshotCache, TcmApiError
from collection.hierarchy import DEFAULT_SEPARATOR
from collection.rql import build_rql_filter

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('collection.log'),
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = {
    'page_size': 100,
    'max_pages': None,
    'cache_ttl': 300,
    'max_workers': 5,
    'separator': DEFAULT_SEPARATOR,
    'timeout': 30,
    'retry_attempts': 3,
    'retry_delay': 1.0,
    'debug': False,
}


def load_config(config_path: str) -> dict:
    """Load configuration from JSON file."""
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
        return config
    except FileNotFoundError:
        logger.error(f"Config file not found: {config_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in config file: {e}")
        raise


def resolve_settings(config: dict, environ=None) -> dict:
    """
    Merge config.json sections with environment variables.
    
    Config values win; ZEBRUNNER_URL, ZEBRUNNER_LOGIN, ZEBRUNNER_TOKEN and
    QASE_API_TOKEN only fill gaps.
    """
    environ = os.environ if environ is None else environ
    source_config = config.get('source', {})
    options = dict(DEFAULT_OPTIONS)
    options.update({k: v for k, v in config.get('options', {}).items() if v is not None})
    
    return {
        'source_type': source_config.get('type', 'zebrunner'),
        'url': source_config.get('url') or environ.get('ZEBRUNNER_URL'),
        'login': source_config.get('login') or environ.get('ZEBRUNNER_LOGIN'),
        'token': source_config.get('token') or environ.get('ZEBRUNNER_TOKEN'),
        'qase_token': source_config.get('api_token') or environ.get('QASE_API_TOKEN'),
        'host': source_config.get('host', 'qase.io'),
        'ssl': source_config.get('ssl', True),
        'enterprise': source_config.get('enterprise', False),
        'options': options,
    }


def parse_args(argv=None):
    """Parse command line arguments - loads from config.json by default."""
    parser = argparse.ArgumentParser(
        description='Collect suite hierarchy and test cases (reads from config.json by default)'
    )
    parser.add_argument('--config', default='config.json',
                       help='Configuration file (default: config.json)')
    parser.add_argument('--project', required=True,
                       help='Project key')
    parser.add_argument('--source', choices=['zebrunner', 'qase'],
                       help='Source service (default: from config, else zebrunner)')
    parser.add_argument('--suite-id', type=int,
                       help='Suite to inspect')
    parser.add_argument('--by-root', action='store_true',
                       help='Match test cases by root suite instead of immediate suite')
    parser.add_argument('--tree', action='store_true',
                       help='Print the suite tree')
    parser.add_argument('--path', action='store_true',
                       help='Print the root-to-suite path of --suite-id')
    parser.add_argument('--automation-state', nargs='+',
                       help='Only test cases in these automation states (ids or names)')
    parser.add_argument('--filter',
                       help='Raw test case filter expression (overrides --automation-state)')
    parser.add_argument('--output',
                       help='Write the result as JSON to this file')
    parser.add_argument('--debug', action='store_true',
                       help='Verbose request logging')
    
    args = parser.parse_args(argv)
    if (args.path or args.by_root) and not args.suite_id:
        parser.error("--suite-id is required with --path and --by-root")
    return args


def build_case_filter(args, source_type: str):
    """
    Filter expression for test case pages, or None.
    
    Expressions are Zebrunner RQL; Qase has no equivalent, so filter flags are
    rejected for it instead of being sent as a title search.
    """
    if not args.automation_state and not args.filter:
        return None
    if source_type != 'zebrunner':
        raise ValueError(f"--automation-state and --filter are only supported for the zebrunner source, not {source_type}")
    states = [int(s) if s.isdigit() else s for s in args.automation_state or []]
    return build_rql_filter(automation_state=states or None, filter=args.filter) or None


def build_source(settings: dict):
    """Create the page source for the configured service."""
    options = settings['options']
    if settings['source_type'] == 'qase':
        from qase_service import QaseService
        from collection.sources import QaseSource
        service = QaseService(
            api_token=settings['qase_token'],
            host=settings['host'],
            ssl=settings['ssl'],
            enterprise=settings['enterprise']
        )
        return QaseSource(service)
    
    from zebrunner_service import ZebrunnerService
    from collection.sources import ZebrunnerSource
    service = ZebrunnerService(
        base_url=settings['url'],
        login=settings['login'],
        token=settings['token'],
        timeout=options['timeout'],
        retry_attempts=options['retry_attempts'],
        retry_delay=options['retry_delay'],
        debug=options['debug']
    )
    return ZebrunnerSource(service)


def print_tree(nodes, indent: int = 0):
    """Print an enriched suite forest, one suite per line."""
    for node in nodes:
        marker = ' [orphaned parent]' if node.get('orphaned') else ''
        print(f"{'  ' * indent}- {node.get('title') or 'Suite ' + str(node['id'])} "
              f"(id: {node['id']}, level: {node.get('level', 0)}){marker}")
        print_tree(node.get('children') or [], indent + 1)


def main(argv=None):
    """Main collection function."""
    args = parse_args(argv)
    
    config = {}
    if Path(args.config).exists():
        try:
            config = load_config(args.config)
        except Exception as e:
            logger.warning(f"Could not load {args.config}: {e}. Using environment only.")
    
    settings = resolve_settings(config)
    if args.source:
        settings['source_type'] = args.source
    if args.debug:
        settings['options']['debug'] = True
        logging.getLogger().setLevel(logging.DEBUG)
    options = settings['options']
    
    stats = CollectionStats()
    result = {}
    
    try:
        case_filter = build_case_filter(args, settings['source_type'])
        source = build_source(settings)
        snapshot_cache = SuiteSnapshotCache(
            source.fetch_suite_page,
            ttl=options['cache_ttl'],
            page_size=options['page_size'],
            max_pages=options['max_pages'],
            stats=stats
        )
        aggregator = CaseAggregator(
            source,
            snapshot_cache=snapshot_cache,
            max_workers=options['max_workers'],
            page_size=options['page_size'],
            max_pages=options['max_pages'],
            separator=options['separator'],
            stats=stats
        )
        
        logger.info("="*60)
        logger.info(f"SUITE COLLECTION: {args.project} ({settings['source_type']})")
        logger.info("="*60)
        
        if args.tree or not args.suite_id:
            tree = aggregator.get_suite_tree(args.project)
            print_tree(tree)
            result['tree'] = tree
        
        if args.suite_id and args.path:
            path = aggregator.get_suite_hierarchy_path(args.project, args.suite_id)
            print(options['separator'].join(step['name'] for step in path))
            result['path'] = path
        
        if args.suite_id and not args.path:
            test_cases = aggregator.all_test_cases_under_suite(
                args.project, args.suite_id, by_root=args.by_root, filter=case_filter
            )
            for test_case in test_cases:
                print(f"{test_case.get('key')}: {test_case.get('title') or ''}")
            result['test_cases'] = test_cases
        
        stats.print_summary()
        
        if args.output:
            with open(args.output, 'w') as f:
                json.dump(result, f, indent=2, default=str)
            logger.info(f"Result saved to {args.output}")
    
    except KeyboardInterrupt:
        logger.warning("\nCollection interrupted by user")
        sys.exit(1)
    except (TcmApiError, ValueError) as e:
        stats.add_error('collection', str(e))
        logger.error(f"\nCollection failed: {e}")
        stats.print_summary()
        sys.exit(1)
    except Exception as e:
        logger.error(f"\nCollection failed with error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
