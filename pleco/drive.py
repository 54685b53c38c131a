"""Steering, camera servo and light control on top of the control board."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from pleco.controlboard import Gpio, Pwm

log = logging.getLogger(__name__)

REAR_LIGHT_DELAY = 2.0
SERVO_OFFSET = 500
SERVO_SCALE = 5 / 2.0
DIRECTION_CHANGE_LIMIT = 30


def _int8(value: int) -> int:
    return ((value + 128) & 0xFF) - 128


def _int16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _uint16(value: int) -> int:
    return value & 0xFFFF


def _servo_duty(raw: int) -> int:
    """Map a doubled percentage (0-200) to a 1-2 ms servo duty, x100 percent."""
    return int(raw * SERVO_SCALE) + SERVO_OFFSET


class DriveController:
    """Translates packed control values into control board commands.

    ``board`` needs ``set_pwm_duty``, ``stop_pwm`` and ``set_gpio``. Tank
    steering drives one PWM per side with direction GPIOs; Ackerman
    steering drives speed and turn servos.
    """

    def __init__(self, board, ackerman: bool = False) -> None:
        self.board = board
        self.ackerman = ackerman
        self.rear_light_delay = REAR_LIGHT_DELAY
        self.old_speed = 0
        self.old_turn = 0
        self.old_direction_left: Optional[int] = 0
        self.old_direction_right: Optional[int] = 0
        self.old_x = 0
        self.old_y = 0
        self._rear_light_timer: Optional[threading.Timer] = None

    def _duty(self, pwm: int, duty: int) -> None:
        try:
            self.board.set_pwm_duty(pwm, duty)
        except ValueError as exc:
            log.error("PWM %d: %s", int(pwm), exc)

    def camera_xy(self, value: int) -> None:
        """Move the camera servos; high byte is X, low byte Y (0-200 each)."""
        x = _uint16(_servo_duty(value >> 8))
        y = _uint16(_servo_duty(value & 0xFF))
        if x != self.old_x:
            self._duty(Pwm.CAMERA_X, x)
            log.info("Camera X PWM: %d", x)
            self.old_x = x
        if y != self.old_y:
            self._duty(Pwm.CAMERA_Y, y)
            log.info("Camera Y PWM: %d", y)
            self.old_y = y

    def speed_turn(self, value: int) -> None:
        """Apply speed (high byte) and turn (low byte), each offset by 100."""
        speed = (value >> 8) & 0xFF
        turn = value & 0xFF
        if self.ackerman:
            self.speed_turn_ackerman(speed, turn)
        else:
            self.speed_turn_tank(speed, turn)

    def speed_turn_tank(self, speed_raw: int, turn_raw: int) -> None:
        """Tank steering: full duty PWM per side, direction by GPIO."""
        speed = _int8(speed_raw - 100)
        turn = _int8(turn_raw - 100)

        speed_left = float(speed)
        speed_right = float(speed)
        turn_adjustment = speed * ((abs(turn) * 2) / 100.0)
        if turn > 0:
            speed_right -= turn_adjustment
        elif turn < 0:
            speed_left -= turn_adjustment

        direction_left = 1
        direction_right = 1
        if speed_left < 0:
            speed_left = -speed_left
            direction_left = 0
        if speed_right < 0:
            speed_right = -speed_right
            direction_right = 0

        if speed == self.old_speed and turn == self.old_turn:
            return

        if (speed != 0) != (self.old_speed != 0):
            enable = 1 if speed else 0
            self.board.set_gpio(Gpio.SPEED_ENABLE_LEFT, enable)
            self.board.set_gpio(Gpio.SPEED_ENABLE_RIGHT, enable)
            if enable:
                # Always set the direction after enabling the motors.
                self.old_direction_left = None
                self.old_direction_right = None

        # Change direction only at low speed, for safety.
        if (
            direction_left != self.old_direction_left
            and speed_left < DIRECTION_CHANGE_LIMIT
        ):
            self.board.set_gpio(Gpio.DIRECTION_LEFT, direction_left)
        if (
            direction_right != self.old_direction_right
            and speed_right < DIRECTION_CHANGE_LIMIT
        ):
            self.board.set_gpio(Gpio.DIRECTION_RIGHT, direction_right)

        self._duty(Pwm.SPEED_LEFT, _uint16(int(speed_left * 100)))
        self._duty(Pwm.SPEED_RIGHT, _uint16(int(speed_right * 100)))
        log.info("Speed PWM left: %s, right: %s", speed_left, speed_right)

        self.old_speed = speed
        self.old_turn = turn
        self.old_direction_left = direction_left
        self.old_direction_right = direction_right

    def speed_turn_ackerman(self, speed_raw: int, turn_raw: int) -> None:
        """Ackerman steering with servo style pulses; rear wheels turn too."""
        speed = _int16(_servo_duty(speed_raw))
        turn = _int16(_servo_duty(turn_raw))

        if speed != self.old_speed:
            self._duty(Pwm.SPEED, speed)
            log.info("Speed PWM: %d", speed)
            if speed < self.old_speed or speed < 0:
                self._start_rear_light_timer()
                self.board.set_gpio(Gpio.REAR_LIGHTS, 1)
            self.old_speed = speed

        if turn != self.old_turn:
            self._duty(Pwm.TURN, turn)
            log.info("Turn PWM1: %d", turn)
            # Rear wheels turn opposite to the front wheels.
            turn2 = _uint16((SERVO_OFFSET - (turn - SERVO_OFFSET)) + SERVO_OFFSET)
            self._duty(Pwm.TURN2, turn2)
            log.info("Turn PWM2: %d", turn2)
            self.old_turn = turn

    def _start_rear_light_timer(self) -> None:
        if self._rear_light_timer is not None:
            self._rear_light_timer.cancel()
        timer = threading.Timer(self.rear_light_delay, self.turn_off_rear_light)
        timer.daemon = True
        self._rear_light_timer = timer
        timer.start()

    def set_lights(self, value: int) -> None:
        """Switch the led and the head lights on or off."""
        self.board.set_gpio(Gpio.LED1, value)
        self.board.set_gpio(Gpio.HEAD_LIGHTS, value)

    def turn_off_rear_light(self) -> None:
        """Switch the rear (brake) lights off."""
        self.board.set_gpio(Gpio.REAR_LIGHTS, 0)

    def stop_all(self) -> None:
        """Stop every PWM channel and disable the motor drivers."""
        log.info("Stop all PWM")
        for pwm in range(Pwm.PWM1, Pwm.PWM8 + 1):
            self.board.stop_pwm(pwm)
        self.old_speed = 0
        self.old_turn = 0
        self.board.set_gpio(Gpio.SPEED_ENABLE_LEFT, 0)
        self.board.set_gpio(Gpio.SPEED_ENABLE_RIGHT, 0)