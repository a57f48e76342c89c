#!./venv/bin/python

'''
This script applies the normalization and sampling to a local file of json lines. Use
this if you want to test sampling strategies locally. The sampler is recomputed every
`--interval-lines` lines instead of on a timer.
'''

import argparse
import json
import os
import sys
import time
from collections import defaultdict

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from honeylog import compile_pattern, iter_lines, parse_line
from honeylog.exceptions import LineTooLongError
from honeylog.normalize import normalize_record
from honeylog.sampler import EMASampler, build_sample_key, should_keep


def main():
    args = get_args()
    sampler = EMASampler(args.sample_rate)
    compiled_patterns = [compile_pattern(p) for p in args.patterns]
    start_time = time.time()
    total_lines = 0
    total_events = 0

    kept_by_key = defaultdict(int)

    with open(args.file, 'rb') as fh:
        for line in iter_lines(fh):
            total_lines += 1
            if total_lines % args.interval_lines == 0:
                sampler.update_maps()
            if isinstance(line, LineTooLongError):
                continue
            try:
                entry = parse_line(line)
            except ValueError:
                continue

            normalize_record(entry, args.url_fields, compiled_patterns, args.query_param_filter)
            key = build_sample_key(entry, args.sampling_fields)
            sampler.record_arrival(key)
            sample_rate, keep = should_keep(sampler.get_sample_rate(key))
            if not keep:
                continue

            if not args.no_out:
                args.output.write(json.dumps({
                    'sample_rate': sample_rate,
                    'sample_key': key,
                    'data': entry,
                }))
                args.output.write('\n')
            kept_by_key[key] += 1
            total_events += 1

    print('Kept %d of %d lines in %.2fs' % (total_events, total_lines, time.time() - start_time),
        file=sys.stderr)
    for key, count in sorted(kept_by_key.items(), key=lambda t: -t[1]):
        print('%s\t%d' % (key, count), file=sys.stderr)


def get_args():
    def csv_type(value):
        return [item for item in value.split(',') if item]

    parser = argparse.ArgumentParser()
    parser.add_argument('file')
    parser.add_argument('sampling_fields', type=csv_type,
        help='Fields to build the sampling key from as csv')
    parser.add_argument('-o', '--output', type=argparse.FileType('w'), default=sys.stdout,
        help='Where to write the sampled output as a stream of json lines. Default is stdout.')
    parser.add_argument('-r', '--sample-rate', type=int, default=1,
        help='Goal sample rate. Default: %(default)s')
    parser.add_argument('-i', '--interval-lines', type=int, default=10000,
        help='Recompute sample rates every this many lines. Default: %(default)s')
    parser.add_argument('-u', '--url-fields', type=csv_type, default=[],
        help='Url fields to break out as csv')
    parser.add_argument('-p', '--patterns', type=csv_type, default=[],
        help='Path patterns to extract as csv')
    parser.add_argument('-q', '--query-param-filter', type=csv_type,
        help='Query param filter as csv')
    parser.add_argument('-n', '--no-out', action='store_true',
        help='Disable output entirely. Useful if you only want to look at the '
        'distribution of kept keys')
    args = parser.parse_args()

    if args.query_param_filter is not None:
        args.query_param_filter = set(args.query_param_filter)

    return args


if __name__ == '__main__':
    main()
