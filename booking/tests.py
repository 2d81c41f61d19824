import datetime
import threading
from unittest import mock

import httpx
from django.contrib import admin
from django.contrib.auth import get_user_model
from django.db import connections
from django.test import RequestFactory, SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse

from .allocator import cancel_selection, register_selection
from .availability import build_availability, remaining_capacity
from .directory import DirectoryClient, DirectoryUnreachable, DirectoryUser, DirectoryUserNotFound
from .exceptions import AlreadyRegistered, NoCapacity, NotFound, TimeUnavailable
from .identity import OutsourceIdentity, RegularIdentity, derive_outsource_userid
from .models import RegisterDate, RegisterSlot, RegisterTime, Setting, UserSlotSelection
from .queries import search_selections
from .utils import format_time_range


def make_time(day=datetime.date(2026, 3, 2), start=datetime.time(9, 0), end=datetime.time(10, 0), **kwargs):
    date, _ = RegisterDate.objects.get_or_create(date=day)
    return RegisterTime.objects.create(date=date, start_time=start, end_time=end, **kwargs)


def make_selection(slot, userid, name='Someone', **kwargs):
    return UserSlotSelection.objects.create(slot=slot, userid=userid, name=name, **kwargs)


def time_entry(payload, time_id):
    for date in payload['dates']:
        for time in date['times']:
            if time['id'] == time_id:
                return time
    return None


class IdentityTests(SimpleTestCase):
    def test_outsource_userid_is_lowercased_and_hyphenated(self):
        self.assertEqual(derive_outsource_userid('John  Smith', 'Site Works'), 'outsource-john-smith-site-works')

    def test_outsource_userid_without_department(self):
        self.assertEqual(derive_outsource_userid(' Jane Doe ', ''), 'outsource-jane-doe')
        self.assertEqual(derive_outsource_userid('Jane Doe', None), 'outsource-jane-doe')

    def test_identities_share_allocator_attributes(self):
        regular = RegularIdentity(userid='E100', name='Alice', department='QA')
        outsource = OutsourceIdentity(name='Bob Lee', department='Cleaning')
        self.assertEqual(regular.register_type, 'regular')
        self.assertEqual(outsource.register_type, 'outsource')
        self.assertEqual(outsource.userid, 'outsource-bob-lee-cleaning')
        self.assertEqual(outsource.position, '')


class FormattingTests(SimpleTestCase):
    def test_time_range(self):
        self.assertEqual(format_time_range(datetime.time(9, 0), datetime.time(10, 30)), '09:00 - 10:30')
        self.assertEqual(
            format_time_range(datetime.time(13, 0), datetime.time(14, 0), twelve_hour=True), '1:00 PM - 2:00 PM'
        )

    def test_legacy_and_missing_times(self):
        self.assertEqual(format_time_range(None, None, '08:30'), '08:30')
        self.assertEqual(format_time_range(None, None, '00:15', twelve_hour=True), '12:15 AM')
        self.assertEqual(format_time_range(None, None), 'No time set')

    def test_remaining_capacity_never_negative(self):
        self.assertEqual(remaining_capacity(5, 2), 3)
        self.assertEqual(remaining_capacity(2, 5), 0)


class AvailabilityTests(TestCase):
    def setUp(self):
        self.time = make_time()
        self.slot_a = RegisterSlot.objects.create(time=self.time, title='Group A', available_slots=5)
        self.slot_b = RegisterSlot.objects.create(time=self.time, title='Group B', available_slots=3)

    def test_remaining_is_capacity_minus_active_selections(self):
        make_selection(self.slot_a, 'E1')
        make_selection(self.slot_b, 'E2')
        make_selection(self.slot_b, 'E3', is_delete=True)

        entry = time_entry(build_availability(), self.time.id)
        self.assertEqual(entry['total_capacity'], 8)
        self.assertEqual(entry['registered_count'], 2)
        self.assertEqual(entry['remaining'], 6)

    def test_deactivated_slot_keeps_counting_its_selections(self):
        for n in range(3):
            make_selection(self.slot_b, f'E{n}')
        self.slot_b.is_active = False
        self.slot_b.save()

        entry = time_entry(build_availability(), self.time.id)
        self.assertEqual(entry['total_capacity'], 5)
        self.assertEqual(entry['registered_count'], 3)
        self.assertEqual(entry['remaining'], 2)
        self.assertEqual(UserSlotSelection.objects.active().filter(slot=self.slot_b).count(), 3)

    def test_remaining_clamped_at_zero(self):
        for n in range(4):
            make_selection(self.slot_b, f'E{n}')
        self.slot_a.is_active = False
        self.slot_a.save()

        entry = time_entry(build_availability(), self.time.id)
        self.assertEqual(entry['remaining'], 0)

    def test_inactive_dates_and_times_are_hidden(self):
        hidden_time = make_time(start=datetime.time(11, 0), end=datetime.time(12, 0), is_active=False)
        inactive_date = RegisterDate.objects.create(date=datetime.date(2026, 3, 3), is_active=False)
        RegisterTime.objects.create(date=inactive_date, start_time=datetime.time(9, 0), end_time=datetime.time(10, 0))
        RegisterDate.objects.create(date=datetime.date(2026, 3, 4))

        payload = build_availability()
        self.assertEqual([d['date'] for d in payload['dates']], ['2026-03-02'])
        self.assertIsNone(time_entry(payload, hidden_time.id))

    def test_time_without_slots_has_no_capacity(self):
        bare = make_time(start=datetime.time(15, 0), end=datetime.time(16, 0))
        entry = time_entry(build_availability(), bare.id)
        self.assertEqual(entry['total_capacity'], 0)
        self.assertEqual(entry['remaining'], 0)

    def test_dates_and_times_are_ordered(self):
        make_time(day=datetime.date(2026, 3, 1), start=datetime.time(8, 0), end=datetime.time(9, 0))
        early = make_time(start=datetime.time(7, 0), end=datetime.time(8, 0))

        payload = build_availability()
        self.assertEqual([d['date'] for d in payload['dates']], ['2026-03-01', '2026-03-02'])
        self.assertEqual([t['id'] for t in payload['dates'][1]['times']], [early.id, self.time.id])

    def test_legacy_times_sort_after_timed_ones(self):
        legacy = RegisterTime.objects.create(date=self.time.date, time='08:00')
        early = make_time(start=datetime.time(7, 0), end=datetime.time(8, 0))

        times = build_availability()['dates'][0]['times']
        self.assertEqual([t['id'] for t in times], [early.id, self.time.id, legacy.id])
        self.assertEqual(times[2]['formatted_time'], '8:00 AM')
        self.assertEqual(list(self.time.date.times.all()), [early, self.time, legacy])

    def test_settings_block_reports_window(self):
        Setting.upsert(
            title='Safety Week',
            register_start_date=datetime.date(2026, 3, 1),
            register_end_date=datetime.date(2026, 3, 10),
        )
        payload = build_availability(today=datetime.date(2026, 3, 5))
        self.assertEqual(payload['settings']['title'], 'Safety Week')
        self.assertTrue(payload['settings']['is_registration_open'])
        self.assertFalse(build_availability(today=datetime.date(2026, 3, 11))['settings']['is_registration_open'])

    def test_availability_endpoint(self):
        resp = self.client.get(reverse('availability'))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.data['success'])
        self.assertEqual(time_entry(resp.data, self.time.id)['remaining'], 8)
        self.assertEqual(resp.data['dates'][0]['times'][0]['formatted_time'], '9:00 AM - 10:00 AM')


class AllocatorTests(TestCase):
    def setUp(self):
        self.time = make_time()
        self.alice = RegularIdentity(userid='E100', name='Alice', department='QA')
        self.bob = RegularIdentity(userid='E200', name='Bob', department='QA')

    def test_single_seat_then_no_capacity(self):
        RegisterSlot.objects.create(time=self.time, title='Only', available_slots=1)
        self.assertEqual(time_entry(build_availability(), self.time.id)['remaining'], 1)

        register_selection(self.alice, self.time.id)
        self.assertEqual(time_entry(build_availability(), self.time.id)['remaining'], 0)

        with self.assertRaises(NoCapacity):
            register_selection(self.bob, self.time.id)
        self.assertEqual(UserSlotSelection.objects.active().count(), 1)

    def test_one_registration_per_user(self):
        RegisterSlot.objects.create(time=self.time, title='A', available_slots=5)
        other = make_time(start=datetime.time(13, 0), end=datetime.time(14, 0))
        RegisterSlot.objects.create(time=other, title='A', available_slots=5)

        register_selection(self.alice, self.time.id)
        with self.assertRaises(AlreadyRegistered):
            register_selection(self.alice, other.id)

    def test_slots_fill_in_creation_order(self):
        first = RegisterSlot.objects.create(time=self.time, title='First', available_slots=1)
        second = RegisterSlot.objects.create(time=self.time, title='Second', available_slots=2)

        picked = [
            register_selection(RegularIdentity(userid=f'E{n}', name=f'N{n}'), self.time.id).slot_id
            for n in range(3)
        ]
        self.assertEqual(picked, [first.id, second.id, second.id])

    def test_inactive_slots_are_skipped(self):
        RegisterSlot.objects.create(time=self.time, title='Closed', available_slots=5, is_active=False)
        open_slot = RegisterSlot.objects.create(time=self.time, title='Open', available_slots=5)

        selection = register_selection(self.alice, self.time.id)
        self.assertEqual(selection.slot_id, open_slot.id)

    def test_unknown_or_inactive_time(self):
        with self.assertRaises(TimeUnavailable):
            register_selection(self.alice, 9999)

        self.time.is_active = False
        self.time.save()
        RegisterSlot.objects.create(time=self.time, title='A', available_slots=5)
        with self.assertRaises(TimeUnavailable):
            register_selection(self.alice, self.time.id)

    def test_time_without_active_slots(self):
        with self.assertRaises(NoCapacity):
            register_selection(self.alice, self.time.id)

    def test_already_registered_checked_before_time(self):
        RegisterSlot.objects.create(time=self.time, title='A', available_slots=5)
        register_selection(self.alice, self.time.id)
        with self.assertRaises(AlreadyRegistered):
            register_selection(self.alice, 9999)

    def test_cancel_frees_capacity_and_allows_reregistration(self):
        RegisterSlot.objects.create(time=self.time, title='Only', available_slots=1)
        selection = register_selection(self.alice, self.time.id)

        cancel_selection(selection.id)
        selection.refresh_from_db()
        self.assertTrue(selection.is_delete)
        self.assertEqual(time_entry(build_availability(), self.time.id)['remaining'], 1)

        register_selection(self.bob, self.time.id)
        with self.assertRaises(NotFound):
            cancel_selection(selection.id)

    def test_outsource_retry_is_already_registered(self):
        RegisterSlot.objects.create(time=self.time, title='A', available_slots=5)
        identity = OutsourceIdentity(name='John Smith', department='Site Works')

        selection = register_selection(identity, self.time.id)
        self.assertEqual(selection.userid, 'outsource-john-smith-site-works')
        self.assertEqual(selection.register_type, 'outsource')

        with self.assertRaises(AlreadyRegistered):
            register_selection(OutsourceIdentity(name='john smith', department='site  works'), self.time.id)


@override_settings(DIRECTORY_VERIFY_REGISTRATIONS=False)
class RegisterSlotApiTests(TestCase):
    def setUp(self):
        self.time = make_time()
        self.slot = RegisterSlot.objects.create(time=self.time, title='Group A', available_slots=1)
        self.url = reverse('register-slot')

    def post(self, data):
        return self.client.post(self.url, data, content_type='application/json')

    def test_register_regular_user(self):
        resp = self.post({
            'userid': 'E100', 'name': 'Alice', 'department': 'QA',
            'register_type': 'regular', 'time_id': self.time.id,
        })
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.data['success'])
        self.assertEqual(resp.data['userid'], 'E100')
        self.assertEqual(resp.data['slot_info']['slot_id'], self.slot.id)
        self.assertEqual(resp.data['slot_info']['time'], '9:00 AM - 10:00 AM')
        self.assertEqual(resp.data['slot_info']['date'], 'Monday, March 2, 2026')

    def test_register_outsource_user(self):
        resp = self.post({
            'name': 'John Smith', 'department': 'Site Works',
            'register_type': 'outsource', 'time_id': self.time.id,
        })
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['userid'], 'outsource-john-smith-site-works')

        retry = self.post({
            'name': 'John Smith', 'department': 'Site Works',
            'register_type': 'outsource', 'time_id': self.time.id,
        })
        self.assertEqual(retry.status_code, 409)
        self.assertEqual(retry.data['code'], 'ALREADY_REGISTERED')

    def test_regular_requires_userid(self):
        resp = self.post({'name': 'Alice', 'register_type': 'regular', 'time_id': self.time.id})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['code'], 'VALIDATION_ERROR')
        self.assertIn('userid', resp.data['errors'])

    def test_missing_fields(self):
        resp = self.post({'register_type': 'vip'})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['success'])
        for field in ('name', 'register_type', 'time_id'):
            self.assertIn(field, resp.data['errors'])

    def test_full_time_is_no_capacity(self):
        self.post({'userid': 'E1', 'name': 'A', 'register_type': 'regular', 'time_id': self.time.id})
        resp = self.post({'userid': 'E2', 'name': 'B', 'register_type': 'regular', 'time_id': self.time.id})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data['code'], 'NO_CAPACITY')

    def test_unknown_time_is_unavailable(self):
        resp = self.post({'userid': 'E1', 'name': 'A', 'register_type': 'regular', 'time_id': 9999})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['code'], 'TIME_UNAVAILABLE')

    def test_malformed_json_is_validation_error(self):
        resp = self.client.post(self.url, '{bad json', content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['success'])
        self.assertEqual(resp.data['code'], 'VALIDATION_ERROR')
        self.assertFalse(UserSlotSelection.objects.exists())

    def test_unsupported_body_is_validation_error(self):
        resp = self.client.post(self.url, 'time_id=1', content_type='text/plain')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['code'], 'VALIDATION_ERROR')


@override_settings(DIRECTORY_VERIFY_REGISTRATIONS=True)
class DirectoryVerifiedRegistrationTests(TestCase):
    def setUp(self):
        self.time = make_time()
        RegisterSlot.objects.create(time=self.time, title='Group A', available_slots=5)
        self.url = reverse('register-slot')
        self.data = {
            'userid': 'E100', 'name': 'typed name', 'department': '',
            'register_type': 'regular', 'time_id': self.time.id,
        }

    @mock.patch('booking.views.get_directory_client')
    def test_directory_record_is_stored(self, get_client):
        get_client.return_value.lookup_user.return_value = DirectoryUser(
            userid='E100', name='Alice Smith', department='QA', position='Engineer'
        )
        resp = self.client.post(self.url, self.data, content_type='application/json')
        self.assertEqual(resp.status_code, 201)

        selection = UserSlotSelection.objects.get(userid='E100')
        self.assertEqual(selection.name, 'Alice Smith')
        self.assertEqual(selection.department, 'QA')
        self.assertEqual(selection.position, 'Engineer')

    @mock.patch('booking.views.get_directory_client')
    def test_unknown_user_is_rejected(self, get_client):
        get_client.return_value.lookup_user.side_effect = DirectoryUserNotFound('User not found')
        resp = self.client.post(self.url, self.data, content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertIn('userid', resp.data['errors'])
        self.assertFalse(UserSlotSelection.objects.exists())

    @mock.patch('booking.views.get_directory_client')
    def test_directory_down_is_service_unavailable(self, get_client):
        get_client.return_value.lookup_user.side_effect = DirectoryUnreachable('Cannot reach user service')
        resp = self.client.post(self.url, self.data, content_type='application/json')
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.data['code'], 'DIRECTORY_UNREACHABLE')

    @mock.patch('booking.views.get_directory_client')
    def test_outsource_skips_directory(self, get_client):
        resp = self.client.post(self.url, {
            'name': 'John', 'register_type': 'outsource', 'time_id': self.time.id,
        }, content_type='application/json')
        self.assertEqual(resp.status_code, 201)
        get_client.assert_not_called()


class DirectoryClientTests(SimpleTestCase):
    def client_for(self, handler):
        return DirectoryClient(
            base_url='http://directory.test/api', token='secret', timeout=1,
            transport=httpx.MockTransport(handler),
        )

    def test_lookup_hit(self):
        def handler(request):
            self.assertEqual(request.url.path, '/api/getuser')
            self.assertEqual(request.headers['token'], 'secret')
            return httpx.Response(200, json={
                'status': 1,
                'user': {'name': 'Alice', 'department': 'QA', 'position': 'Engineer'},
            })

        user = self.client_for(handler).lookup_user('E100')
        self.assertEqual(user, DirectoryUser(userid='E100', name='Alice', department='QA', position='Engineer'))

    def test_lookup_miss(self):
        client = self.client_for(lambda request: httpx.Response(200, json={'status': 0, 'message': 'No such user'}))
        with self.assertRaisesMessage(DirectoryUserNotFound, 'No such user'):
            client.lookup_user('E404')

    def test_server_error_is_unreachable(self):
        client = self.client_for(lambda request: httpx.Response(502, text='bad gateway'))
        with self.assertRaises(DirectoryUnreachable):
            client.lookup_user('E100')

    def test_timeout_is_unreachable(self):
        def handler(request):
            raise httpx.ConnectTimeout('timed out', request=request)

        with self.assertRaisesMessage(DirectoryUnreachable, 'Connection timeout'):
            self.client_for(handler).lookup_user('E100')

    def test_invalid_json_is_unreachable(self):
        client = self.client_for(lambda request: httpx.Response(200, text='<html>'))
        with self.assertRaises(DirectoryUnreachable):
            client.lookup_user('E100')


class GetUserApiTests(TestCase):
    def setUp(self):
        self.url = reverse('get-user')

    @mock.patch('booking.views.get_directory_client')
    def test_get_user(self, get_client):
        get_client.return_value.lookup_user.return_value = DirectoryUser(
            userid='E100', name='Alice', department='QA', position='Engineer'
        )
        resp = self.client.post(self.url, {'user_id': 'E100'}, content_type='application/json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['user'], {'name': 'Alice', 'department': 'QA', 'position': 'Engineer'})

    @mock.patch('booking.views.get_directory_client')
    def test_get_user_not_found(self, get_client):
        get_client.return_value.lookup_user.side_effect = DirectoryUserNotFound('User not found')
        resp = self.client.post(self.url, {'user_id': 'E404'}, content_type='application/json')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['code'], 'NOT_FOUND')

    def test_get_user_requires_id(self):
        resp = self.client.post(self.url, {}, content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertIn('user_id', resp.data['errors'])


class SelectionLookupTests(TestCase):
    def setUp(self):
        time = make_time()
        self.slot = RegisterSlot.objects.create(time=time, title='Group A', available_slots=50)

    def test_read_is_repeatable(self):
        selection = make_selection(self.slot, 'E100', name='Alice', department='QA')
        url = reverse('slot-selection-detail', args=[selection.id])

        first = self.client.get(url)
        second = self.client.get(url)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data, second.data)
        self.assertEqual(first.data['slot_selection']['slot_title'], 'Group A')
        self.assertEqual(first.data['slot_selection']['date'], 'Monday, March 2, 2026')

    def test_cancelled_selection_is_not_found(self):
        selection = make_selection(self.slot, 'E100', is_delete=True)
        resp = self.client.get(reverse('slot-selection-detail', args=[selection.id]))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['code'], 'NOT_FOUND')

    def test_search_matches_userid_or_name_newest_first(self):
        older = make_selection(self.slot, 'E100', name='Alice Smith')
        newer = make_selection(self.slot, 'E200', name='Bob Smith')
        make_selection(self.slot, 'E300', name='Carol')
        make_selection(self.slot, 'E400', name='Dan Smith', is_delete=True)

        resp = self.client.post(reverse('search-registrations'), {'search': 'smith'}, content_type='application/json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['count'], 2)
        self.assertEqual([r['id'] for r in resp.data['registrations']], [newer.id, older.id])

        by_id = search_selections('E30')
        self.assertEqual([s.userid for s in by_id], ['E300'])

    def test_search_is_limited(self):
        for n in range(5):
            make_selection(self.slot, f'E{n}', name='Same Name')
        self.assertEqual(len(search_selections('same', limit=3)), 3)
        with override_settings(REGISTRATION_SEARCH_LIMIT=4):
            self.assertEqual(len(search_selections('same')), 4)

    def test_search_requires_term(self):
        resp = self.client.post(reverse('search-registrations'), {'search': ''}, content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['code'], 'VALIDATION_ERROR')


class ConcurrentRegistrationTests(TransactionTestCase):
    def test_capacity_is_never_exceeded(self):
        time = make_time()
        RegisterSlot.objects.create(time=time, title='Small', available_slots=2)
        RegisterSlot.objects.create(time=time, title='Large', available_slots=3)
        capacity = 5
        attempts = 12

        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(attempts)

        def attempt(n):
            try:
                start.wait()
                register_selection(RegularIdentity(userid=f'E{n}', name=f'User {n}'), time.id)
                outcome = 'ok'
            except NoCapacity:
                outcome = 'full'
            finally:
                connections.close_all()
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(results.count('ok'), capacity)
        self.assertEqual(results.count('full'), attempts - capacity)
        self.assertEqual(UserSlotSelection.objects.active().count(), capacity)
        for slot in RegisterSlot.objects.all():
            self.assertLessEqual(slot.active_selection_count(), slot.available_slots)

    def test_same_user_registers_once(self):
        time = make_time()
        RegisterSlot.objects.create(time=time, title='A', available_slots=10)
        attempts = 6

        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(attempts)

        def attempt():
            try:
                start.wait()
                register_selection(RegularIdentity(userid='E100', name='Alice'), time.id)
                outcome = 'ok'
            except AlreadyRegistered:
                outcome = 'duplicate'
            finally:
                connections.close_all()
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(results.count('ok'), 1)
        self.assertEqual(results.count('duplicate'), attempts - 1)
        self.assertEqual(UserSlotSelection.objects.filter(userid='E100').count(), 1)


class AdminSiteTests(TestCase):
    def setUp(self):
        self.superuser = get_user_model().objects.create_superuser(username='root', password='pass1234')
        self.client.force_login(self.superuser)
        self.request = RequestFactory().get('/')
        self.request.user = self.superuser

        self.slot = RegisterSlot.objects.create(time=make_time(), title='Group A', available_slots=3)
        self.selection = make_selection(self.slot, 'E100', name='Alice')

    def test_selections_cannot_be_hard_deleted(self):
        selection_admin = admin.site._registry[UserSlotSelection]
        self.assertFalse(selection_admin.has_delete_permission(self.request, self.selection))
        actions = selection_admin.get_actions(self.request)
        self.assertNotIn('delete_selected', actions)
        self.assertIn('cancel_selected', actions)

    @mock.patch('booking.allocator.invalidate_availability_cache')
    def test_cancel_action_soft_deletes(self, invalidate):
        cancelled = make_selection(self.slot, 'E200', name='Bob', is_delete=True)
        resp = self.client.post(reverse('admin:booking_userslotselection_changelist'), {
            'action': 'cancel_selected',
            '_selected_action': [self.selection.id, cancelled.id],
        })
        self.assertEqual(resp.status_code, 302)

        self.selection.refresh_from_db()
        self.assertTrue(self.selection.is_delete)
        self.assertEqual(UserSlotSelection.objects.count(), 2)
        invalidate.assert_called_once()

    def test_slot_capacity_and_time_are_read_only_on_change(self):
        slot_admin = admin.site._registry[RegisterSlot]
        self.assertIn('available_slots', slot_admin.get_readonly_fields(self.request, self.slot))
        self.assertIn('time', slot_admin.get_readonly_fields(self.request, self.slot))
        self.assertNotIn('available_slots', slot_admin.get_readonly_fields(self.request))

    @mock.patch('booking.admin.invalidate_availability_cache')
    def test_slot_change_keeps_capacity_and_drops_cache(self, invalidate):
        resp = self.client.post(reverse('admin:booking_registerslot_change', args=[self.slot.id]), {
            'title': 'Renamed',
            'is_active': 'on',
            'available_slots': 0,
        })
        self.assertEqual(resp.status_code, 302)

        self.slot.refresh_from_db()
        self.assertEqual(self.slot.title, 'Renamed')
        self.assertEqual(self.slot.available_slots, 3)
        self.assertTrue(invalidate.called)
