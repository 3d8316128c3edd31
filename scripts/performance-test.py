#!/usr/bin/env python3
import sys
import os
import time
from decimal import Decimal

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from ledger_engine import LedgerEngine
from models import TransactionKind, TransactionRecord

# Generate test data: 1,000 clients, 100 deposits and a dispute/resolve each
records = []
tx_id = 0
for client in range(1000):
    for _ in range(100):
        records.append(TransactionRecord(
            kind=TransactionKind.DEPOSIT,
            client_id=client,
            tx_id=tx_id,
            amount=Decimal('1.0001'),
        ))
        tx_id += 1
    records.append(TransactionRecord(kind=TransactionKind.DISPUTE, client_id=client, tx_id=tx_id - 1))
    records.append(TransactionRecord(kind=TransactionKind.RESOLVE, client_id=client, tx_id=tx_id - 1))

# Performance test
start_time = time.time()
engine = LedgerEngine()
summary = engine.process(records)
duration = time.time() - start_time

print(f'Processed {len(records):,} records in {duration:.2f} seconds')
assert duration < 30, f'Performance test failed: {duration:.2f}s > 30s'
assert summary.records_ignored == 0, f'Expected no ignored records, got {summary.records_ignored}'
assert all(a.available == Decimal('100.0100') for a in engine.accounts.values()), 'Balance drift detected'
print('Performance test passed')
