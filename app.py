from flask import Flask, jsonify, request, Response
import logging
import time

from config import CHAINS, EXPORT_CSV_NAME, ResolverConfig
from logging_setup import setup_logging
from resolver_errors import RoundResolverError
from round_export import rounds_to_csv
from round_resolver import get_reader, run_query
from web3_utils import get_rpc_stats

app = Flask(__name__)

# Track server start time for uptime calculation
SERVER_START_TIME = time.time()

setup_logging()
logger = logging.getLogger(__name__)

RESOLVER_CONFIG = ResolverConfig.from_env()
# Swapped out in tests
reader_factory = get_reader


def _history_from_request():
    args = request.args
    return run_query(
        args.get('contractAddress'),
        args.get('chain'),
        args.get('startTimestamp'),
        args.get('endTimestamp'),
        strategy=args.get('strategy', 'phased'),
        config=RESOLVER_CONFIG,
        reader_factory=reader_factory,
        timeout=args.get('timeout', type=float),
    )


@app.errorhandler(RoundResolverError)
def handle_resolver_error(err):
    logger.warning("%s %s failed: %s %s", request.method, request.full_path, err.error_code, err.message)
    return jsonify(err.to_dict()), err.status


@app.route('/api/price')
def api_price():
    """Rounds of a feed between startTimestamp and endTimestamp (unix seconds).

    Query: contractAddress, chain, startTimestamp, endTimestamp, optional
    strategy ('phased' or 'chunked') and timeout in seconds.
    """
    return jsonify(_history_from_request().to_dict())


@app.route('/api/price.csv')
def api_price_csv():
    history = _history_from_request()
    return Response(
        rounds_to_csv(history),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={EXPORT_CSV_NAME}'},
    )


@app.route('/api/chains')
def api_chains():
    return jsonify([
        {'chain': key, 'name': cfg['name'], 'chainId': cfg['chain_id']}
        for key, cfg in CHAINS.items()
    ])


@app.route('/debug/rpc')
def debug_rpc():
    """Per-provider RPC call counters, optionally for one chain."""
    return jsonify(get_rpc_stats(request.args.get('chain')))


@app.route('/health')
def health():
    return jsonify({'status': 'ok', 'uptime': int(time.time() - SERVER_START_TIME)})


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=False)
