import asyncio
from unittest.mock import patch

from django.db import IntegrityError, OperationalError
from django.test import TestCase, TransactionTestCase

from videogate.access import AccessCache
from videogate.exceptions import AccessStoreError
from videogate.models import AccessGrant


class AccessCacheTests(TestCase):
    def setUp(self) -> None:
        self.cache = AccessCache()

    async def test_grant_then_check(self):
        self.assertFalse(await self.cache.check_access('0xABC', 42))

        grant = await self.cache.grant_access('0xABC', 42, 'tx_1')

        self.assertEqual(grant.transaction_id, 'tx_1')
        self.assertTrue(await self.cache.check_access('0xABC', 42))

    async def test_regrant_replaces_record(self):
        first = await self.cache.grant_access('0xABC', 42, 'tx_1')
        second = await self.cache.grant_access('0xABC', 42, 'tx_2')

        grants = await self.cache.get_user_access('0xABC')
        self.assertEqual(len(grants), 1)
        self.assertEqual(grants[0].transaction_id, 'tx_2')
        self.assertGreaterEqual(second.granted_at, first.granted_at)

    async def test_user_id_is_exact_match(self):
        await self.cache.grant_access('0xABC', 42)

        self.assertFalse(await self.cache.check_access('0xabc', 42))

    async def test_revoke_removes_record(self):
        await self.cache.grant_access('0xABC', 42)

        self.assertTrue(await self.cache.revoke_access('0xABC', 42))
        self.assertFalse(await self.cache.check_access('0xABC', 42))

    async def test_revoke_without_grant_returns_false(self):
        self.assertFalse(await self.cache.revoke_access('0xNOBODY', 42))

    async def test_enumeration_by_user_and_asset(self):
        await self.cache.grant_access('0xA', 1, 'tx_a1')
        await self.cache.grant_access('0xA', 2, 'tx_a2')
        await self.cache.grant_access('0xB', 1)

        by_user = await self.cache.get_user_access('0xA')
        by_asset = await self.cache.get_asset_access(1)

        self.assertEqual({g.asset_id for g in by_user}, {1, 2})
        self.assertEqual({g.user_id for g in by_asset}, {'0xA', '0xB'})

    async def test_lookup_by_transaction(self):
        await self.cache.grant_access('0xA', 7, 'tx_lookup')

        grant = await self.cache.get_by_transaction('tx_lookup')
        self.assertIsNotNone(grant)
        self.assertEqual(grant.asset_id, 7)
        self.assertIsNone(await self.cache.get_by_transaction('missing'))

    async def test_storage_failure_raises_access_store_error(self):
        with patch.object(AccessGrant.objects, 'filter', side_effect=OperationalError('db down')):
            with self.assertRaises(AccessStoreError):
                await self.cache.check_access('0xABC', 42)

    async def test_insert_race_is_retried(self):
        create = AccessGrant.objects.create
        attempts = []

        def racing_create(**fields):
            attempts.append(fields['transaction_id'])
            if len(attempts) == 1:
                raise IntegrityError('UNIQUE constraint failed')
            return create(**fields)

        with patch.object(AccessGrant.objects, 'create', side_effect=racing_create):
            grant = await self.cache.grant_access('0xABC', 42, 'tx_race')

        self.assertEqual(attempts, ['tx_race', 'tx_race'])
        self.assertEqual(grant.transaction_id, 'tx_race')
        self.assertEqual(await AccessGrant.objects.filter(user_id='0xABC').acount(), 1)

    async def test_persistent_conflict_raises_access_store_error(self):
        with patch.object(AccessGrant.objects, 'create',
                          side_effect=IntegrityError('UNIQUE constraint failed')):
            with self.assertRaises(AccessStoreError):
                await self.cache.grant_access('0xABC', 42, 'tx_1')


class ConcurrentGrantTests(TransactionTestCase):
    async def test_concurrent_grants_leave_one_record(self):
        cache = AccessCache()
        transaction_ids = [f'tx_{index}' for index in range(10)]

        grants = await asyncio.gather(*(
            cache.grant_access('0xABC', 42, transaction_id)
            for transaction_id in transaction_ids
        ))

        self.assertEqual(len(grants), 10)
        rows = [grant async for grant in AccessGrant.objects.filter(user_id='0xABC', asset_id=42)]
        self.assertEqual(len(rows), 1)
        # The surviving row is the last write to commit.
        self.assertEqual(rows[0].granted_at, max(grant.granted_at for grant in grants))
        self.assertIn(rows[0].transaction_id, transaction_ids)
