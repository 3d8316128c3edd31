#!/usr/bin/env python3
"""
Emit a large CSV of plausible, but not necessarily coherent, transaction
records on stdout. The output can be fed straight into the ledger CLI.
"""

import argparse
import math
import random
import sys

TX_TYPES = ["deposit", "withdrawal"]
DISPUTE_TYPES = ["dispute", "resolve", "chargeback"]


def skewed_id(rng: random.Random, maximum: int) -> int:
    # sqrt of a uniform sample biases ids toward the top of the range
    return int(math.sqrt(rng.random() * maximum * maximum))


def generate(out, records, max_client, max_tx, max_amount, dispute_chance, seed=None):
    rng = random.Random(seed)
    out.write("type, client, tx, amount\n")
    for _ in range(records):
        tx = skewed_id(rng, max_tx)
        client = skewed_id(rng, max_client)
        if rng.random() < dispute_chance:
            out.write(f"{rng.choice(DISPUTE_TYPES)},{client},{tx}\n")
        else:
            amount = rng.random() * max_amount
            out.write(f"{rng.choice(TX_TYPES)},{client},{tx},{amount:.4f}\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate stress-test transaction CSV data.")
    parser.add_argument("--records", type=int, default=1_000_000)
    parser.add_argument("--max-client", type=int, default=60_000)
    parser.add_argument("--max-tx", type=int, default=4_000_000_000)
    parser.add_argument("--max-amount", type=float, default=100_000)
    parser.add_argument("--dispute-chance", type=float, default=0.2)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    generate(
        sys.stdout,
        records=args.records,
        max_client=args.max_client,
        max_tx=args.max_tx,
        max_amount=args.max_amount,
        dispute_chance=args.dispute_chance,
        seed=args.seed,
    )
