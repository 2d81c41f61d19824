import csv
import datetime
import io
import os
import tempfile
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework.exceptions import ValidationError

from booking.models import RegisterDate, RegisterSlot, RegisterTime, Setting, UserSlotSelection

from . import ledger
from .exports import EXPORT_COLUMNS, clean_string
from .serializers import MassAddSlotSerializer

User = get_user_model()


class AdminApiTestCase(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username='admin', password='pass1234', is_staff=True)
        self.client.force_login(self.admin)

        self.date = RegisterDate.objects.create(date=datetime.date(2026, 3, 2))
        self.time = RegisterTime.objects.create(
            date=self.date, start_time=datetime.time(9, 0), end_time=datetime.time(10, 0)
        )
        self.slot = RegisterSlot.objects.create(time=self.time, title='Group A', available_slots=3)

    def post(self, name, data, *args):
        return self.client.post(reverse(f'event_admin:{name}', args=args), data, content_type='application/json')

    def patch(self, name, data, *args):
        return self.client.patch(reverse(f'event_admin:{name}', args=args), data, content_type='application/json')

    def delete(self, name, *args):
        return self.client.delete(reverse(f'event_admin:{name}', args=args))

    def select(self, userid, name='Someone', slot=None, **kwargs):
        return UserSlotSelection.objects.create(slot=slot or self.slot, userid=userid, name=name, **kwargs)


class AdminPermissionTests(TestCase):
    def test_anonymous_is_rejected(self):
        resp = self.client.get(reverse('event_admin:dashboard'))
        self.assertIn(resp.status_code, (401, 403))
        self.assertFalse(resp.data['success'])

    def test_non_staff_is_forbidden(self):
        user = User.objects.create_user(username='member', password='pass1234')
        self.client.force_login(user)
        resp = self.client.post(
            reverse('event_admin:slot-mass-add'),
            {'title': 'X', 'available_slots': 1, 'time_ids': [1]},
            content_type='application/json',
        )
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(RegisterSlot.objects.exists())


class SettingsTests(AdminApiTestCase):
    def test_defaults_when_nothing_saved(self):
        resp = self.client.get(reverse('event_admin:settings'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['title'], 'Safety Week Registration')
        self.assertIsNone(resp.data['data']['register_start_date'])
        self.assertFalse(resp.data['data']['is_registration_open'])

    def test_upsert_keeps_single_row(self):
        data = {'title': 'Safety Week', 'register_start_date': '2026-03-01', 'register_end_date': '2026-03-10'}
        self.assertEqual(self.post('settings', data).status_code, 200)
        data['title'] = 'Safety Week 2026'
        resp = self.post('settings', data)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Setting.objects.count(), 1)
        self.assertEqual(Setting.load().title, 'Safety Week 2026')
        self.assertEqual(resp.data['data']['register_end_date'], '2026-03-10')

    def test_end_date_must_follow_start_date(self):
        resp = self.post('settings', {
            'title': 'Safety Week', 'register_start_date': '2026-03-10', 'register_end_date': '2026-03-10',
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn('register_end_date', resp.data['errors'])
        self.assertFalse(Setting.objects.exists())


class SaveAllTests(AdminApiTestCase):
    def payload(self):
        return {
            'settings': {
                'title': 'Safety Week', 'register_start_date': '2026-03-01', 'register_end_date': '2026-03-10',
            },
            'dates': [
                {'date': '2026-03-02', 'is_active': False, 'times': [
                    {'start_time': '09:00', 'end_time': '10:00'},
                    {'start_time': '13:00', 'end_time': '14:00'},
                ]},
                {'date': '2026-03-05', 'times': []},
            ],
        }

    def test_save_all_merges_dates_and_times(self):
        resp = self.post('save-all', self.payload())
        self.assertEqual(resp.status_code, 200)

        self.date.refresh_from_db()
        self.assertFalse(self.date.is_active)
        self.assertEqual(RegisterDate.objects.count(), 2)
        # the existing 09:00 window is reused rather than duplicated
        self.assertEqual(self.date.times.count(), 2)
        self.assertEqual(Setting.load().title, 'Safety Week')
        self.assertEqual(len(resp.data['dates']), 2)

    def test_duplicate_dates_rejected(self):
        data = self.payload()
        data['dates'].append({'date': '2026-03-05'})
        resp = self.post('save-all', data)
        self.assertEqual(resp.status_code, 400)
        self.assertIn('dates', resp.data['errors'])

    def test_failure_rolls_back_everything(self):
        dates = [{'date': datetime.date(2026, 4, 1), 'is_active': True, 'times': [
            {'start_time': datetime.time(9, 0), 'end_time': datetime.time(10, 0), 'is_active': True},
        ]}]
        settings_data = {
            'title': 'Never saved',
            'register_start_date': datetime.date(2026, 3, 1),
            'register_end_date': datetime.date(2026, 3, 10),
        }
        with mock.patch.object(RegisterTime.objects, 'get_or_create', side_effect=RuntimeError('boom')):
            with self.assertRaises(RuntimeError):
                ledger.save_all(settings_data, dates)

        self.assertFalse(Setting.objects.exists())
        self.assertFalse(RegisterDate.objects.filter(date=datetime.date(2026, 4, 1)).exists())


class LedgerCrudTests(AdminApiTestCase):
    def test_date_list_returns_tree(self):
        self.select('E1')
        resp = self.client.get(reverse('event_admin:date-list'))
        self.assertEqual(resp.status_code, 200)
        date = resp.data['dates'][0]
        self.assertEqual(date['formatted_date'], 'Monday, March 2, 2026')
        self.assertEqual(date['times'][0]['time'], '09:00 - 10:00')
        self.assertEqual(date['times'][0]['slots'][0]['active_count'], 1)

    def test_create_and_toggle_date(self):
        resp = self.post('date-list', {'date': '2026-03-09'})
        self.assertEqual(resp.status_code, 201)
        date_id = resp.data['data']['id']

        resp = self.patch('date-detail', {'is_active': False}, date_id)
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(RegisterDate.objects.get(pk=date_id).is_active)

    def test_duplicate_date_rejected(self):
        resp = self.post('date-list', {'date': '2026-03-02'})
        self.assertEqual(resp.status_code, 400)
        self.assertIn('date', resp.data['errors'])

    def test_create_time(self):
        resp = self.post('time-create', {
            'register_date_id': self.date.id, 'start_time': '13:00', 'end_time': '14:30',
        })
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['time'], '13:00 - 14:30')
        self.assertEqual(resp.data['data']['formatted_time'], '1:00 PM - 2:30 PM')

    def test_time_end_must_follow_start(self):
        resp = self.post('time-create', {
            'register_date_id': self.date.id, 'start_time': '10:00', 'end_time': '09:00',
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn('end_time', resp.data['errors'])

        resp = self.patch('time-detail', {'end_time': '08:00'}, self.time.id)
        self.assertEqual(resp.status_code, 400)

    def test_time_count(self):
        RegisterTime.objects.create(date=self.date, start_time=datetime.time(11, 0), is_active=False)
        resp = self.client.get(reverse('event_admin:time-count'))
        self.assertEqual(resp.data['count'], 1)

    def test_create_slot(self):
        resp = self.post('slot-create', {'register_time_id': self.time.id, 'title': 'Group B', 'available_slots': 10})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(self.time.slots.count(), 2)

    def test_slot_capacity_must_be_positive(self):
        resp = self.post('slot-create', {'register_time_id': self.time.id, 'title': 'Empty', 'available_slots': 0})
        self.assertEqual(resp.status_code, 400)
        self.assertIn('available_slots', resp.data['errors'])

    def test_capacity_cannot_drop_below_active_registrations(self):
        self.select('E1')
        self.select('E2')
        self.select('E3', is_delete=True)

        resp = self.patch('slot-detail', {'available_slots': 1}, self.slot.id)
        self.assertEqual(resp.status_code, 400)
        self.assertIn('available_slots', resp.data['errors'])

        resp = self.patch('slot-detail', {'available_slots': 2}, self.slot.id)
        self.assertEqual(resp.status_code, 200)
        self.slot.refresh_from_db()
        self.assertEqual(self.slot.available_slots, 2)

    def test_slot_cannot_move_to_another_time(self):
        self.select('E1')
        other = RegisterTime.objects.create(
            date=self.date, start_time=datetime.time(13, 0), end_time=datetime.time(14, 0)
        )

        resp = self.patch('slot-detail', {'register_time_id': other.id}, self.slot.id)
        self.assertEqual(resp.status_code, 400)
        self.assertIn('register_time_id', resp.data['errors'])
        self.slot.refresh_from_db()
        self.assertEqual(self.slot.time_id, self.time.id)

        resp = self.patch('slot-detail', {'register_time_id': self.time.id, 'title': 'Renamed'}, self.slot.id)
        self.assertEqual(resp.status_code, 200)

    def test_time_cannot_move_to_another_date(self):
        other = RegisterDate.objects.create(date=datetime.date(2026, 3, 9))

        resp = self.patch('time-detail', {'register_date_id': other.id}, self.time.id)
        self.assertEqual(resp.status_code, 400)
        self.assertIn('register_date_id', resp.data['errors'])
        self.time.refresh_from_db()
        self.assertEqual(self.time.date_id, self.date.id)

    def test_deactivating_slot_keeps_its_registrations(self):
        for n in range(3):
            self.select(f'E{n}')
        resp = self.patch('slot-detail', {'is_active': False}, self.slot.id)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(UserSlotSelection.objects.active().filter(slot=self.slot).count(), 3)

    def test_delete_date_cascades(self):
        self.select('E1')
        resp = self.delete('date-detail', self.date.id)
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(RegisterTime.objects.exists())
        self.assertFalse(RegisterSlot.objects.exists())
        self.assertFalse(UserSlotSelection.objects.exists())

    def test_delete_time_cascades(self):
        self.select('E1')
        resp = self.delete('time-detail', self.time.id)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(RegisterDate.objects.exists())
        self.assertFalse(RegisterSlot.objects.exists())
        self.assertFalse(UserSlotSelection.objects.exists())

    def test_delete_slot(self):
        self.select('E1')
        resp = self.delete('slot-detail', self.slot.id)
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(UserSlotSelection.objects.exists())

    def test_missing_rows_are_not_found(self):
        resp = self.delete('slot-detail', 9999)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['code'], 'NOT_FOUND')


class MassAddTests(AdminApiTestCase):
    def setUp(self):
        super().setUp()
        self.times = [self.time] + [
            RegisterTime.objects.create(date=self.date, start_time=datetime.time(hour, 0), end_time=datetime.time(hour + 1, 0))
            for hour in (10, 11, 12)
        ]

    def test_one_slot_per_time(self):
        resp = self.post('slot-mass-add', {
            'title': 'Group B', 'available_slots': 5, 'time_ids': [t.id for t in self.times],
        })
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(len(resp.data['created']), 4)

        created = RegisterSlot.objects.filter(title='Group B')
        self.assertEqual(created.count(), 4)
        self.assertEqual({slot.time_id for slot in created}, {t.id for t in self.times})
        self.assertTrue(all(slot.available_slots == 5 for slot in created))

    def test_duplicate_time_ids_collapse(self):
        resp = self.post('slot-mass-add', {
            'title': 'Group B', 'available_slots': 5, 'time_ids': [self.time.id, self.time.id],
        })
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(RegisterSlot.objects.filter(title='Group B').count(), 1)

    def test_existing_title_rejected(self):
        resp = self.post('slot-mass-add', {
            'title': 'Group A', 'available_slots': 5, 'time_ids': [t.id for t in self.times],
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn('title', resp.data['errors'])
        self.assertEqual(RegisterSlot.objects.count(), 1)

    def test_unknown_time_rejected(self):
        resp = self.post('slot-mass-add', {'title': 'Group B', 'available_slots': 5, 'time_ids': [self.time.id, 9999]})
        self.assertEqual(resp.status_code, 400)
        self.assertIn('time_ids', resp.data['errors'])
        self.assertFalse(RegisterSlot.objects.filter(title='Group B').exists())

    def test_title_rechecked_when_saving(self):
        serializer = MassAddSlotSerializer(data={
            'title': 'Group B', 'available_slots': 5, 'time_ids': [t.id for t in self.times],
        })
        self.assertTrue(serializer.is_valid())
        # another admin adds the same title after validation passed
        RegisterSlot.objects.create(time=self.times[2], title='Group B', available_slots=5)

        with self.assertRaises(ValidationError):
            serializer.save()
        self.assertEqual(RegisterSlot.objects.filter(title='Group B').count(), 1)

    def test_capacity_bounds(self):
        for capacity in (0, 1001):
            resp = self.post('slot-mass-add', {'title': 'Group B', 'available_slots': capacity, 'time_ids': [self.time.id]})
            self.assertEqual(resp.status_code, 400)


class DashboardTests(AdminApiTestCase):
    def test_stats(self):
        RegisterSlot.objects.create(time=self.time, title='Closed', available_slots=10, is_active=False)
        RegisterDate.objects.create(date=datetime.date(2026, 3, 20))
        self.select('E1')
        self.select('E2')
        self.select('E3', is_delete=True)

        stats = ledger.dashboard_stats(today=datetime.date(2026, 3, 1))
        self.assertEqual(stats['total_dates'], 2)
        self.assertEqual(stats['total_time_slots'], 1)
        self.assertEqual(stats['total_slots'], 1)
        self.assertEqual(stats['total_registrations'], 2)
        self.assertEqual(stats['total_capacity'], 3)
        self.assertEqual(stats['total_available_slots'], 1)
        self.assertEqual(stats['upcoming_sessions'], 1)

    def test_endpoint(self):
        resp = self.client.get(reverse('event_admin:dashboard'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['stats']['total_capacity'], 3)


class RegistrationAdminTests(AdminApiTestCase):
    def test_grouped_list_with_search(self):
        other_time = RegisterTime.objects.create(
            date=self.date, start_time=datetime.time(13, 0), end_time=datetime.time(14, 0)
        )
        other_slot = RegisterSlot.objects.create(time=other_time, title='Group A', available_slots=3)
        self.select('E1', name='Alice Smith')
        self.select('E2', name='Bob Jones', slot=other_slot)
        self.select('E3', name='Carol Smith', is_delete=True)

        resp = self.client.get(reverse('event_admin:registration-list'))
        times = resp.data['registrations'][0]['times']
        self.assertEqual(len(times), 2)
        self.assertEqual(times[0]['slots'][0]['selections'][0]['userid'], 'E1')

        resp = self.client.get(reverse('event_admin:registration-list'), {'q': 'smith'})
        times = resp.data['registrations'][0]['times']
        self.assertEqual(len(times), 1)
        self.assertEqual([s['userid'] for s in times[0]['slots'][0]['selections']], ['E1'])

    def test_cancel_is_soft_delete(self):
        selection = self.select('E1')
        resp = self.delete('registration-detail', selection.id)
        self.assertEqual(resp.status_code, 200)

        selection.refresh_from_db()
        self.assertTrue(selection.is_delete)

        resp = self.delete('registration-detail', selection.id)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['code'], 'NOT_FOUND')

    def test_user_can_register_again_after_cancel(self):
        selection = self.select('E1')
        self.delete('registration-detail', selection.id)
        self.select('E1')
        self.assertEqual(UserSlotSelection.objects.filter(userid='E1').count(), 2)


class ExportTests(AdminApiTestCase):
    def setUp(self):
        super().setUp()
        self.select('E1', name='Alice', department='QA', position='Engineer')
        self.select('outsource-bob-site', name='Bob', department='Site', register_type='outsource')
        self.select('E3', name='Carol', department='QA', is_delete=True)

    def rows(self, text):
        return list(csv.reader(io.StringIO(text)))

    def test_csv_download(self):
        resp = self.client.get(reverse('event_admin:registration-export'))
        self.assertEqual(resp.status_code, 200)
        self.assertRegex(resp['Content-Disposition'], r'attachment; filename="registrations_\d{8}_\d{6}\.csv"')
        self.assertTrue(resp.content.startswith(b'\xef\xbb\xbf'))

        rows = self.rows(resp.content.decode('utf-8-sig'))
        self.assertEqual(rows[0], [heading for _, heading in EXPORT_COLUMNS])
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[1], [
            '2026-03-02', 'Monday, March 2, 2026', '09:00 - 10:00', '9:00 AM - 10:00 AM',
            'Group A', 'E1', 'Alice', 'Engineer', 'QA', 'regular',
        ])

    def test_csv_filters(self):
        resp = self.client.get(reverse('event_admin:registration-export'), {'register_type': 'outsource'})
        rows = self.rows(resp.content.decode('utf-8-sig'))
        self.assertEqual([row[5] for row in rows[1:]], ['outsource-bob-site'])

        resp = self.client.get(reverse('event_admin:registration-export'), {'department': 'QA', 'search': 'ali'})
        rows = self.rows(resp.content.decode('utf-8-sig'))
        self.assertEqual([row[5] for row in rows[1:]], ['E1'])

    def test_invalid_filter(self):
        resp = self.client.get(reverse('event_admin:registration-export'), {'register_type': 'vip'})
        self.assertEqual(resp.status_code, 400)

    def test_clean_string(self):
        self.assertEqual(clean_string('  a\x00b\x1f '), 'ab')
        self.assertEqual(clean_string(None), '')

    def test_management_command(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'out', 'registrations.csv')
            out = io.StringIO()
            call_command('export_registrations_csv', output=path, department='QA', stdout=out)

            with open(path, newline='', encoding='utf-8-sig') as fh:
                rows = list(csv.reader(fh))

        self.assertIn('Exported 1 registrations', out.getvalue())
        self.assertEqual(rows[0][0], 'Date')
        self.assertEqual([row[5] for row in rows[1:]], ['E1'])
