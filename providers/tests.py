from datetime import date, datetime, time, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase

from appointments.exceptions import BookingError, InvalidIntervalError, NotFoundError
from clinics.models import Clinic
from guest_visits.models import GuestAffiliation

from . import services
from .calendar import ClosureSpan, DayRule, ExceptionRegistry, ScheduleCalendar
from .intervals import carve, merge_intervals, overlaps, subtract_intervals
from .models import Break, Closure, Provider, Service, WorkingDay
from .slots import AffiliationWindow, BookedRange, generate_slots

User = get_user_model()

UTC = dt_timezone.utc
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
PRIMARY = 1
CLINIC_B = 2


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=UTC)


def weekday_calendar(exceptions=None, open_time=time(8, 0), close_time=time(16, 0)):
    """Mon-Fri open 08:00-16:00 unless overridden."""
    exceptions = exceptions or ExceptionRegistry()
    rules = {day: DayRule(True, open_time, close_time) for day in range(5)}
    return ScheduleCalendar(rules=rules, exceptions=exceptions)


def run(target_date, exceptions=None, duration=30, **kwargs):
    exceptions = exceptions or ExceptionRegistry()
    return generate_slots(
        calendar=weekday_calendar(exceptions),
        exceptions=exceptions,
        target_date=target_date,
        duration_minutes=duration,
        primary_location_id=PRIMARY,
        tz=UTC,
        **kwargs,
    )


# ═══════════════════════════════════════════════════════════════════
#  Interval arithmetic
# ═══════════════════════════════════════════════════════════════════


class IntervalTests(SimpleTestCase):

    def test_touching_ranges_do_not_overlap(self):
        self.assertFalse(overlaps(1, 2, 2, 3))
        self.assertTrue(overlaps(1, 3, 2, 4))
        self.assertTrue(overlaps(2, 3, 1, 4))

    def test_merge_joins_overlapping_and_touching(self):
        self.assertEqual(merge_intervals([(5, 7), (1, 3), (3, 4), (6, 9)]), [(1, 4), (5, 9)])

    def test_subtract_leaves_ordered_remainders(self):
        self.assertEqual(subtract_intervals((0, 10), [(2, 3), (5, 6)]), [(0, 2), (3, 5), (6, 10)])

    def test_subtract_block_covering_base(self):
        self.assertEqual(subtract_intervals((2, 4), [(0, 10)]), [])

    def test_subtract_overlapping_blocks_counted_once(self):
        self.assertEqual(subtract_intervals((0, 10), [(2, 5), (4, 6)]), [(0, 2), (6, 10)])

    def test_carve_drops_short_remainder(self):
        slots = carve((at(MONDAY, 8), at(MONDAY, 9, 10)), timedelta(minutes=20))
        self.assertEqual([s for s, _ in slots], [at(MONDAY, 8), at(MONDAY, 8, 20), at(MONDAY, 8, 40)])

    def test_carve_duration_longer_than_interval(self):
        self.assertEqual(carve((at(MONDAY, 8), at(MONDAY, 8, 30)), timedelta(minutes=45)), [])


# ═══════════════════════════════════════════════════════════════════
#  Calendar and exceptions
# ═══════════════════════════════════════════════════════════════════


class ScheduleCalendarTests(SimpleTestCase):

    def test_inverted_working_hours_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            DayRule(True, time(16, 0), time(8, 0))

    def test_empty_working_hours_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            DayRule(True, time(8, 0), time(8, 0))

    def test_closed_day_needs_no_times(self):
        self.assertFalse(DayRule(False).is_open)

    def test_inverted_break_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            ExceptionRegistry(breaks=((time(13, 0), time(12, 0)),))

    def test_inverted_closure_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            ClosureSpan(TUESDAY, MONDAY)

    def test_unknown_weekday_rejected(self):
        with self.assertRaises(InvalidIntervalError):
            ScheduleCalendar(rules={7: DayRule(False)})

    def test_missing_weekday_is_closed(self):
        calendar = ScheduleCalendar(rules={0: DayRule(True, time(8, 0), time(16, 0))})
        self.assertTrue(calendar.is_open(MONDAY))
        self.assertFalse(calendar.is_open(TUESDAY))
        self.assertIsNone(calendar.open_interval(TUESDAY, UTC))

    def test_closure_is_inclusive_on_both_ends(self):
        registry = ExceptionRegistry(closures=(ClosureSpan(MONDAY, TUESDAY, "Holiday"),))
        self.assertTrue(registry.is_closed(MONDAY))
        self.assertTrue(registry.is_closed(TUESDAY))
        self.assertFalse(registry.is_closed(TUESDAY + timedelta(days=1)))
        self.assertEqual(registry.closure_for(MONDAY).reason, "Holiday")

    def test_closure_blocks_whole_day(self):
        registry = ExceptionRegistry(
            breaks=((time(12, 0), time(13, 0)),),
            closures=(ClosureSpan(MONDAY, MONDAY),),
        )
        self.assertEqual(
            registry.blocked_intervals(MONDAY, UTC),
            [(at(MONDAY, 0), at(MONDAY, 0) + timedelta(days=1))],
        )

    def test_overlapping_breaks_are_merged(self):
        registry = ExceptionRegistry(breaks=((time(12, 0), time(13, 0)), (time(12, 30), time(13, 30))))
        self.assertEqual(registry.blocked_intervals(MONDAY, UTC), [(at(MONDAY, 12), at(MONDAY, 13, 30))])


# ═══════════════════════════════════════════════════════════════════
#  Slot generation
# ═══════════════════════════════════════════════════════════════════


class SlotGenerationTests(SimpleTestCase):

    def test_open_day_without_breaks(self):
        """Mon 08:00-16:00 at 30 minutes gives 16 slots."""
        slots = run(MONDAY)
        self.assertEqual(len(slots), 16)
        self.assertEqual(slots[0].start, at(MONDAY, 8))
        self.assertEqual(slots[-1].start, at(MONDAY, 15, 30))
        self.assertTrue(all(s.location_id == PRIMARY for s in slots))

    def test_break_removes_slots_inside_it(self):
        exceptions = ExceptionRegistry(breaks=((time(12, 0), time(13, 0)),))
        slots = run(MONDAY, exceptions)
        starts = [s.start for s in slots]

        self.assertEqual(len(slots), 14)
        self.assertIn(at(MONDAY, 11, 30), starts)
        self.assertFalse(any(at(MONDAY, 12) <= s < at(MONDAY, 13) for s in starts))

    def test_closure_gives_empty_list(self):
        exceptions = ExceptionRegistry(closures=(ClosureSpan(MONDAY, MONDAY, "Vacation"),))
        self.assertEqual(run(MONDAY, exceptions), [])

    def test_closed_weekday_gives_empty_list(self):
        self.assertEqual(run(date(2030, 1, 12)), [])  # Saturday

    def test_slots_never_cross_close_time(self):
        slots = run(MONDAY, duration=45)
        self.assertEqual(len(slots), 10)
        self.assertLessEqual(slots[-1].end, at(MONDAY, 16))

    def test_guest_visit_replaces_primary_slots_in_window(self):
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        slots = run(TUESDAY, affiliations=[window])

        primary = [s for s in slots if s.location_id == PRIMARY]
        guest = [s for s in slots if s.location_id == CLINIC_B]

        self.assertEqual(len(primary), 12)
        self.assertFalse(
            any(overlaps(s.start, s.end, at(TUESDAY, 10), at(TUESDAY, 12)) for s in primary)
        )
        self.assertEqual(len(guest), 6)
        self.assertTrue(all(s.end - s.start == timedelta(minutes=20) for s in guest))
        self.assertTrue(all(s.guest_affiliation_id == 7 for s in guest))
        self.assertTrue(all(at(TUESDAY, 10) <= s.start < at(TUESDAY, 12) for s in guest))

    def test_forced_duration_applies_to_guest_window(self):
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        slots = run(TUESDAY, affiliations=[window], guest_duration_minutes=30)
        guest = [s for s in slots if s.is_guest_visit]
        self.assertEqual(len(guest), 4)

    def test_guest_visit_on_closed_primary_day(self):
        window = AffiliationWindow(7, CLINIC_B, date(2030, 1, 12), time(9, 0), time(10, 0), 30)
        slots = run(date(2030, 1, 12), affiliations=[window])
        self.assertEqual([s.location_id for s in slots], [CLINIC_B, CLINIC_B])

    def test_daily_break_applies_inside_guest_window(self):
        exceptions = ExceptionRegistry(breaks=((time(11, 0), time(11, 30)),))
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        guest = [s for s in run(TUESDAY, exceptions, affiliations=[window]) if s.is_guest_visit]

        self.assertEqual(
            [s.start for s in guest],
            [at(TUESDAY, 10), at(TUESDAY, 10, 20), at(TUESDAY, 10, 40), at(TUESDAY, 11, 30)],
        )
        self.assertFalse(
            any(overlaps(s.start, s.end, at(TUESDAY, 11), at(TUESDAY, 11, 30)) for s in guest)
        )

    def test_closure_also_blocks_guest_window(self):
        exceptions = ExceptionRegistry(closures=(ClosureSpan(TUESDAY, TUESDAY, "Conference"),))
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        self.assertEqual(run(TUESDAY, exceptions, affiliations=[window]), [])

    def test_guest_visit_for_other_date_ignored(self):
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        self.assertEqual(len(run(MONDAY, affiliations=[window])), 16)

    def test_guest_visit_at_primary_location_ignored(self):
        window = AffiliationWindow(7, PRIMARY, TUESDAY, time(10, 0), time(12, 0), 20)
        slots = run(TUESDAY, affiliations=[window])
        self.assertEqual(len(slots), 16)
        self.assertFalse(any(s.is_guest_visit for s in slots))

    def test_booked_range_removes_overlapping_slots(self):
        bookings = [BookedRange(at(MONDAY, 9, 15), 30)]
        starts = [s.start for s in run(MONDAY, bookings=bookings)]
        self.assertNotIn(at(MONDAY, 9), starts)
        self.assertNotIn(at(MONDAY, 9, 30), starts)
        self.assertIn(at(MONDAY, 10), starts)
        self.assertEqual(len(starts), 14)

    def test_booking_at_other_location_blocks_primary(self):
        """A booking made in a guest window still occupies the provider."""
        window = AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(12, 0), 20)
        bookings = [BookedRange(at(TUESDAY, 10, 20), 20)]
        slots = run(TUESDAY, affiliations=[window], bookings=bookings)
        self.assertNotIn(at(TUESDAY, 10, 20), [s.start for s in slots])
        self.assertEqual(len([s for s in slots if s.is_guest_visit]), 5)

    def test_output_sorted_and_non_overlapping(self):
        windows = [
            AffiliationWindow(7, CLINIC_B, TUESDAY, time(10, 0), time(11, 0), 20),
            AffiliationWindow(8, 3, TUESDAY, time(13, 0), time(14, 0), 15),
        ]
        slots = run(TUESDAY, affiliations=windows)
        starts = [s.start for s in slots]
        self.assertEqual(starts, sorted(starts))
        for previous, current in zip(slots, slots[1:]):
            self.assertLessEqual(previous.end, current.start)

    def test_generation_is_deterministic(self):
        exceptions = ExceptionRegistry(breaks=((time(12, 0), time(13, 0)),))
        self.assertEqual(run(MONDAY, exceptions), run(MONDAY, exceptions))


# ═══════════════════════════════════════════════════════════════════
#  ORM-backed schedule
# ═══════════════════════════════════════════════════════════════════


class ProviderTestMixin:
    """Shared setup: one doctor provider at Clinic A, open Mon-Fri 08:00-16:00."""

    def setUp(self):
        self.main_doctor = User.objects.create_user(
            phone="0591000001",
            password="testpass123",
            name="Dr. Owner",
            role="MAIN_DOCTOR",
        )
        self.doctor = User.objects.create_user(
            phone="0591000002",
            password="testpass123",
            name="Dr. Ahmad",
            role="DOCTOR",
        )
        self.clinic_a = Clinic.objects.create(
            name="Clinic A",
            address="Address A",
            phone="0591111111",
            email="a@clinic.com",
            main_doctor=self.main_doctor,
        )
        self.clinic_b = Clinic.objects.create(
            name="Clinic B",
            address="Address B",
            phone="0592222222",
            email="b@clinic.com",
            main_doctor=self.main_doctor,
        )
        self.provider = Provider.objects.create(
            name="Dr. Ahmad",
            user=self.doctor,
            primary_location=self.clinic_a,
            slot_duration_minutes=30,
        )
        services.set_working_hours(
            self.provider,
            {day: {"is_open": True, "open_time": time(8, 0), "close_time": time(16, 0)} for day in range(5)},
        )


class ProviderModelTests(ProviderTestMixin, TestCase):

    def test_new_provider_gets_seven_days(self):
        provider = Provider.objects.create(name="Clinic A", kind="CLINIC", primary_location=self.clinic_a)
        self.assertEqual(provider.working_days.count(), 7)
        self.assertFalse(provider.working_days.filter(is_open=True).exists())

    def test_working_day_inverted_hours_raise(self):
        day = self.provider.working_days.get(weekday=0)
        day.open_time, day.close_time = time(16, 0), time(8, 0)
        with self.assertRaises(ValidationError):
            day.save()

    def test_break_inverted_raises(self):
        with self.assertRaises(ValidationError):
            Break.objects.create(provider=self.provider, start_time=time(13, 0), end_time=time(12, 0))

    def test_closure_inverted_raises(self):
        with self.assertRaises(ValidationError):
            Closure.objects.create(provider=self.provider, start_date=TUESDAY, end_date=MONDAY)

    def test_slot_duration_bounds(self):
        self.provider.slot_duration_minutes = 0
        with self.assertRaises(ValidationError):
            self.provider.full_clean()


class AvailabilityServiceTests(ProviderTestMixin, TestCase):

    def test_open_monday(self):
        slots = services.get_availability(self.provider.id, MONDAY)
        self.assertEqual(len(slots), 16)
        self.assertEqual(slots[0].location_id, self.clinic_a.id)

    def test_break_and_closure(self):
        services.add_break(self.provider, time(12, 0), time(13, 0), label="Lunch")
        self.assertEqual(len(services.get_availability(self.provider.id, MONDAY)), 14)

        services.add_closure(self.provider, MONDAY, MONDAY, reason="Conference")
        self.assertEqual(services.get_availability(self.provider.id, MONDAY), [])

    def test_confirmed_guest_visit_tags_slots(self):
        GuestAffiliation.objects.create(
            provider=self.provider,
            host_location=self.clinic_b,
            date=TUESDAY,
            window_start=time(10, 0),
            window_end=time(12, 0),
            slot_duration_minutes=20,
            initiated_by=GuestAffiliation.Party.HOST,
            status=GuestAffiliation.Status.CONFIRMED,
        )
        slots = services.get_availability(self.provider.id, TUESDAY)
        guest = [s for s in slots if s.location_id == self.clinic_b.id]
        self.assertEqual(len(guest), 6)
        self.assertEqual(len(slots) - len(guest), 12)

    def test_pending_guest_visit_is_ignored(self):
        GuestAffiliation.objects.create(
            provider=self.provider,
            host_location=self.clinic_b,
            date=TUESDAY,
            window_start=time(10, 0),
            window_end=time(12, 0),
            initiated_by=GuestAffiliation.Party.HOST,
        )
        slots = services.get_availability(self.provider.id, TUESDAY)
        self.assertTrue(all(s.location_id == self.clinic_a.id for s in slots))

    def test_service_duration_sizes_slots(self):
        service = Service.objects.create(provider=self.provider, name="Consultation", duration_minutes=60)
        slots = services.get_availability(self.provider.id, MONDAY, service_id=service.id)
        self.assertEqual(len(slots), 8)

    def test_unknown_service_raises(self):
        with self.assertRaises(BookingError) as ctx:
            services.get_availability(self.provider.id, MONDAY, service_id=9999)
        self.assertEqual(ctx.exception.code, "invalid_service")

    def test_inactive_provider_not_found(self):
        self.provider.is_active = False
        self.provider.save()
        with self.assertRaises(NotFoundError):
            services.get_availability(self.provider.id, MONDAY)


class ScheduleWriteTests(ProviderTestMixin, TestCase):

    def test_working_hours_all_or_nothing(self):
        with self.assertRaises(InvalidIntervalError):
            services.set_working_hours(
                self.provider,
                {
                    0: {"is_open": True, "open_time": time(9, 0), "close_time": time(12, 0)},
                    1: {"is_open": True, "open_time": time(12, 0), "close_time": time(9, 0)},
                },
            )
        monday = self.provider.working_days.get(weekday=0)
        self.assertEqual(monday.open_time, time(8, 0))

    def test_closing_a_day_clears_times(self):
        services.set_working_hours(self.provider, {0: {"is_open": False}})
        monday = self.provider.working_days.get(weekday=0)
        self.assertFalse(monday.is_open)
        self.assertIsNone(monday.open_time)
        self.assertEqual(services.get_availability(self.provider.id, MONDAY), [])

    def test_add_break_rejects_inverted_range(self):
        with self.assertRaises(InvalidIntervalError):
            services.add_break(self.provider, time(13, 0), time(13, 0))
        self.assertFalse(self.provider.breaks.exists())

    def test_remove_unknown_closure(self):
        with self.assertRaises(NotFoundError):
            services.remove_closure(self.provider, 9999)

    def test_update_settings(self):
        services.update_provider_settings(self.provider, slot_duration_minutes=20, auto_confirm=True)
        self.provider.refresh_from_db()
        self.assertEqual(self.provider.slot_duration_minutes, 20)
        self.assertTrue(self.provider.auto_confirm)

    def test_update_settings_rejects_out_of_range_duration(self):
        with self.assertRaises(BookingError) as ctx:
            services.update_provider_settings(self.provider, slot_duration_minutes=1000)
        self.assertEqual(ctx.exception.code, "invalid_duration")


class WorkingDayOrderingTests(ProviderTestMixin, TestCase):

    def test_days_listed_monday_first(self):
        days = list(WorkingDay.objects.filter(provider=self.provider))
        self.assertEqual([d.weekday for d in days], list(range(7)))
