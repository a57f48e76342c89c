import itertools
import math
import random
import threading
import time
import traceback

from .normalize import stringify


# Picked to be unlikely to show up in any of the field values
KEY_SEPARATOR = "•"

DEFAULT_ADJUSTMENT_INTERVAL = 15
DEFAULT_WEIGHT = 0.5
DEFAULT_AGE_OUT_VALUE = 0.5
DEFAULT_BURST_MULTIPLE = 2.0
DEFAULT_BURST_DETECTION_DELAY = 3


def build_sample_key(record, sampling_fields):
    """
    Build the key used to group records by the sampler. Missing fields
    contribute an empty value so that the position of each field is kept.
    """
    return KEY_SEPARATOR.join(
        stringify(record[field]) if field in record else ""
        for field in sampling_fields
    )


def should_keep(sample_rate, rng=random):
    """
    Decide whether to keep a record sampled at `sample_rate`.

    :returns: A tuple of the (clamped) sample rate and whether to keep the record.
    """
    # Protect against something going weird in the sampler
    if sample_rate < 1:
        sample_rate = 1
    return sample_rate, rng.randint(1, sample_rate) == 1


class EMASampler:
    """
    Dynamic sampler keeping an exponential moving average of the traffic seen
    per key.

    Every `adjustment_interval` seconds the counts from the last interval are
    folded into the moving averages and new sample rates are computed. The
    budget of `total / goal_sample_rate` events is split between keys by the
    logarithm of their volume, so rare keys are kept (close to) in full while
    frequent keys get a proportionally higher sample rate.

    If the traffic in the current interval grows beyond `burst_multiple` times
    the moving average total the rates are recomputed early instead of waiting
    for the interval to end. This is only enabled after
    `burst_detection_delay` intervals so there's a baseline to compare with.
    """

    def __init__(
        self,
        goal_sample_rate,
        adjustment_interval=DEFAULT_ADJUSTMENT_INTERVAL,
        weight=DEFAULT_WEIGHT,
        age_out_value=DEFAULT_AGE_OUT_VALUE,
        burst_multiple=DEFAULT_BURST_MULTIPLE,
        burst_detection_delay=DEFAULT_BURST_DETECTION_DELAY,
        max_keys=0,
        clock=time.monotonic,
    ):
        if goal_sample_rate < 1:
            raise ValueError("goal_sample_rate must be at least 1")
        if not 0 < weight <= 1:
            raise ValueError("weight must be in (0, 1]")

        self.goal_sample_rate = goal_sample_rate
        self.adjustment_interval = adjustment_interval
        self.weight = weight
        self.age_out_value = age_out_value
        self.burst_multiple = burst_multiple
        self.burst_detection_delay = burst_detection_delay
        self.max_keys = max_keys
        self.clock = clock

        # Guards the counters and the published sample rates
        self._lock = threading.Lock()
        # Serializes recomputations triggered by the timer and by bursts
        self._update_lock = threading.Lock()

        self._current_counts = {}
        self._current_burst_sum = 0
        self._burst_threshold = 0
        self._burst_pending = False
        self._sample_rates = {}
        self._moving_average = {}
        self._interval_count = 0
        self._last_update = None

        self._stopped = threading.Event()
        self._wakeup = threading.Event()
        self._thread = None

    def record_arrival(self, key, count=1):
        with self._lock:
            if key in self._current_counts:
                self._current_counts[key] += count
            elif not self.max_keys or len(self._current_counts) < self.max_keys:
                self._current_counts[key] = count
            self._current_burst_sum += count

            if (
                not self._burst_pending
                and self._interval_count >= self.burst_detection_delay
                and self._current_burst_sum >= self._burst_threshold
            ):
                self._burst_pending = True
                self._wakeup.set()

    def get_sample_rate(self, key):
        with self._lock:
            return self._sample_rates.get(key, 1)

    def tick(self):
        """
        Recompute the sample rates if an interval has passed since the last
        recomputation or a burst has been detected.

        :returns: Whether the rates were recomputed.
        """
        now = self.clock()
        with self._lock:
            if self._last_update is None:
                self._last_update = now
            due = (
                self._burst_pending
                or now - self._last_update >= self.adjustment_interval
            )
        if not due:
            return False

        self.update_maps()
        return True

    def update_maps(self):
        with self._update_lock:
            with self._lock:
                counts = self._current_counts
                self._current_counts = {}
                self._current_burst_sum = 0
                self._burst_pending = False
                self._last_update = self.clock()
                self._interval_count += 1

            self._update_moving_average(counts)
            sample_rates = calculate_sample_rates(
                self._moving_average, self.goal_sample_rate
            )
            burst_threshold = (
                sum(self._moving_average.values()) * self.burst_multiple
            )

            with self._lock:
                self._sample_rates = sample_rates
                self._burst_threshold = burst_threshold

    def _update_moving_average(self, counts):
        for key in set(self._moving_average) | set(counts):
            average = (1 - self.weight) * self._moving_average.get(
                key, 0
            ) + self.weight * counts.get(key, 0)
            if average < self.age_out_value:
                self._moving_average.pop(key, None)
            else:
                self._moving_average[key] = average

    def start(self):
        if self._thread is not None:
            raise RuntimeError("Sampler already started")
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run, name="ema-sampler", daemon=True
        )
        self._thread.start()

    def stop(self):
        if self._thread is None:
            return
        self._stopped.set()
        self._wakeup.set()
        self._thread.join()
        self._thread = None

    def _run(self):
        # Wake up a few times per interval so a burst is acted upon quickly
        poll_interval = min(self.adjustment_interval, 1)
        while not self._stopped.is_set():
            self._wakeup.wait(poll_interval)
            self._wakeup.clear()
            if self._stopped.is_set():
                break
            try:
                self.tick()
            except Exception:  # pylint: disable=broad-except
                # The previous rates stay in place until the next tick
                traceback.print_exc()


def calculate_sample_rates(moving_average, goal_sample_rate):
    """
    :param moving_average: A dictionary of key to its moving average count.
    :param goal_sample_rate: The average sample rate to aim for.
    :returns: A dictionary of key to its integer sample rate.
    """
    if not moving_average:
        return {}

    # Counts below 1 would give a negative logarithm and throw off the sums
    counts = {key: max(1, count) for key, count in moving_average.items()}
    log_sum = sum(math.log10(count) for count in counts.values())
    if log_sum == 0:
        return {key: 1 for key in counts}

    goal_count = sum(counts.values()) / goal_sample_rate
    goal_ratio = goal_count / log_sum

    # Keys that don't use up their share leave the rest to the keys after them
    sample_rates = {}
    extra = 0.0
    keys = sorted(counts)
    for index, key in enumerate(keys):
        count = counts[key]
        goal_for_key = max(1, math.log10(count) * goal_ratio)
        extra_for_key = extra / (len(keys) - index)
        goal_for_key += extra_for_key
        extra -= extra_for_key

        if count <= goal_for_key:
            sample_rate = 1
            extra += goal_for_key - count
        else:
            sample_rate = math.ceil(count / goal_for_key)
            extra += goal_for_key - count / sample_rate
        sample_rates[key] = max(1, int(sample_rate))

    # The carried over budget depends on key order, so a key can end up with a
    # lower rate than a rarer one. Rates must not fall as the volume rises.
    floor = 1
    for _, group in itertools.groupby(sorted(counts, key=counts.get), key=counts.get):
        group = list(group)
        floor = max([floor] + [sample_rates[key] for key in group])
        for key in group:
            sample_rates[key] = floor
    return sample_rates
