import os
import tempfile
import threading
import unittest

from models import ContributionKey, Visa, VisaRequest
from storage.visa_history import VisaHistoryStore


class TestVisaHistoryStore(unittest.TestCase):
    def test_get_last_and_list_order(self):
        with VisaHistoryStore() as store:
            first = VisaRequest('apache', 'pull/1/head', 'RunAll', ticket='IGNITE-1', date=1.0)
            second = VisaRequest('apache', 'pull/1/head', 'RunAll', ticket='IGNITE-1', date=2.0)
            other = VisaRequest('apache', 'pull/2/head', 'RunAll', ticket='IGNITE-2', date=3.0)
            for r in (first, second, other):
                store.append(r)

            last = store.get_last(ContributionKey('apache', 'pull/1/head'))
            self.assertEqual(last.request_id, second.request_id)
            self.assertEqual([r.request_id for r in store.list_all()], [first.request_id, second.request_id, other.request_id])
            self.assertIsNone(store.get_last(ContributionKey('private', 'pull/1/head')))

    def test_put_updates_in_place(self):
        with VisaHistoryStore() as store:
            req = VisaRequest('apache', 'ignite-10930', 'RunAll', ticket='IGNITE-10930', build_ids=[5, 6], observing=True)
            store.append(req)
            req.set_result(Visa(Visa.JIRA_COMMENTED, '77', 3))
            store.put(req)

            all_requests = store.list_all()
            self.assertEqual(len(all_requests), 1)
            stored = all_requests[0]
            self.assertFalse(stored.observing)
            self.assertEqual(stored.build_ids, [5, 6])
            self.assertEqual(stored.result, Visa(Visa.JIRA_COMMENTED, '77', 3))

    def test_persists_across_reopen(self):
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        path = tmp.name
        tmp.close()
        try:
            store = VisaHistoryStore(path)
            store.append(VisaRequest('apache', 'pull/3/head', 'RunAll', user_name='alice'))
            store.close()

            store = VisaHistoryStore(path)
            last = store.get_last(ContributionKey('apache', 'pull/3/head'))
            self.assertEqual(last.user_name, 'alice')
            store.close()
        finally:
            os.remove(path)

    def test_concurrent_appends(self):
        store = VisaHistoryStore()
        errors = []

        def worker(idx):
            try:
                for i in range(20):
                    store.append(VisaRequest('apache', f"pull/{idx}/head", 'RunAll', build_ids=[i]))
            except Exception as ex:
                errors.append(str(ex))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(store.list_all()), 80)
        self.assertEqual(store.get_last(ContributionKey('apache', 'pull/2/head')).build_ids, [19])
        store.close()


if __name__ == '__main__':
    unittest.main()
