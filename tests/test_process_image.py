import numpy as np
import pytest

from hough_rectangle import process_image
from hough_rectangle.errors import InvalidConfigurationError, InvalidImageError
from hough_rectangle.process_image import HoughRectangle

eps = 1e-9


def random_edge_image(shape, density=0.1, seed=0):
    rng = np.random.default_rng(seed)
    return np.where(rng.random(shape) < density, 255.0, 0.0)


class TestLinearSpacedArray:
    @pytest.mark.parametrize(
        "a, b, n", [(-90, 90, 181), (-90, 90, 256), (0.0, 1.0, 2), (3.5, -2.0, 7)]
    )
    def test_endpoints_and_spacing(self, a, b, n):
        values = process_image.linear_spaced_array(a, b, n)
        assert len(values) == n
        assert values[0] == a
        assert values[-1] == b
        steps = np.diff(values)
        assert np.allclose(steps, (b - a) / (n - 1))

    def test_single_bin_returns_start(self):
        values = process_image.linear_spaced_array(-90, 90, 1)
        assert list(values) == [-90.0]

    def test_zero_bins_is_invalid(self):
        with pytest.raises(InvalidConfigurationError):
            process_image.linear_spaced_array(0, 1, 0)


class TestNormaliseImg:
    def test_values_are_binary(self):
        img = np.array([[0.0, 10.0, 127.5], [128.0, 255.0, 300.0]])
        process_image.normalise_img(img)
        assert np.array_equal(img, [[0, 0, 0], [255, 255, 255]])

    def test_idempotent(self):
        rng = np.random.default_rng(3)
        img = rng.uniform(-50, 400, size=(20, 30))
        process_image.normalise_img(img)
        once = img.copy()
        process_image.normalise_img(img)
        assert np.array_equal(img, once)
        assert set(np.unique(img)) <= {0.0, 255.0}

    def test_rejects_integer_images(self):
        with pytest.raises(InvalidImageError):
            process_image.normalise_img(np.zeros((4, 4), dtype=np.uint8))

    def test_rejects_color_images(self):
        with pytest.raises(InvalidImageError):
            process_image.normalise_img(np.zeros((4, 4, 3)))


class TestFindLocalMaximum:
    def test_row_major_positions_above_threshold(self):
        acc = np.array([[0.0, 5.0, 1.0], [7.0, 2.0, 5.0]])
        peaks = process_image.find_local_maximum(acc, 2.0)
        assert peaks.tolist() == [[0, 1], [1, 0], [1, 2]]

    def test_threshold_is_strict(self):
        acc = np.full((3, 3), 4.0)
        assert len(process_image.find_local_maximum(acc, 4.0)) == 0


class TestRing:
    def test_full_disk_without_masking_is_identity(self):
        img = random_edge_image((9, 14))
        half_diagonal = np.hypot(9, 14) / 2
        assert np.array_equal(process_image.ring(img, 0, half_diagonal), img)

    def test_inverted_radii_give_zeros(self):
        img = np.ones((7, 7))
        assert not np.any(process_image.ring(img, 3, 2))

    def test_annulus(self):
        result = process_image.ring(np.ones((5, 5)), 1, 2)
        assert result[2, 2] == 0  # centre, distance 0
        assert result[0, 0] == 0  # corner, distance 2.83
        assert result[0, 2] == 1  # distance 2
        assert result[1, 1] == 1  # distance 1.41

    def test_does_not_modify_input(self):
        img = np.ones((5, 5))
        process_image.ring(img, 1, 2)
        assert np.all(img == 1)


class TestHoughRectangleConfiguration:
    def test_angle_set(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=181, rho_bins=21)
        assert len(context.thetas) == 181
        assert context.thetas[0] == -90
        assert context.thetas[-1] == 90
        assert np.all(np.diff(context.thetas) > 0)

    def test_radius_axis_spans_half_diagonal(self):
        context = HoughRectangle(np.zeros((31, 41)), rho_bins=64)
        rho_limit = np.hypot(30, 40) / 2
        assert len(context.rho_axis) == 64
        assert abs(context.rho_axis[0] + rho_limit) < eps
        assert abs(context.rho_axis[-1] - rho_limit) < eps

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"theta_bins": 0},
            {"rho_bins": -3},
            {"theta_min": 10, "theta_max": 10},
            {"theta_min": 45, "theta_max": -45},
        ],
    )
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            HoughRectangle(np.zeros((5, 5)), **kwargs)

    def test_context_keeps_private_image_copy(self):
        img = np.zeros((5, 5))
        context = HoughRectangle(img)
        img[2, 2] = 255
        assert not np.any(context.img)
        with pytest.raises(ValueError):
            context.img[0, 0] = 1

    def test_rejects_non_2d_image(self):
        with pytest.raises(InvalidImageError):
            HoughRectangle(np.zeros((5, 5, 3)))


class TestHoughTransform:
    def test_empty_image_gives_zero_accumulator(self):
        context = HoughRectangle(np.zeros((30, 20)), theta_bins=90, rho_bins=40)
        acc = context.hough_transform(np.zeros((30, 20)))
        assert acc.shape == (40, 90)
        assert not np.any(acc)

    def test_centre_pixel_votes_for_zero_radius(self):
        img = np.zeros((41, 41))
        img[20, 20] = 255
        context = HoughRectangle(img, theta_bins=181, rho_bins=57)
        acc = context.hough_transform(img)
        assert np.all(acc[28, :] == 1)
        assert np.sum(acc) == 181

    def test_single_pixel_traces_sinusoid(self):
        img = np.zeros((41, 41))
        img[25, 30] = 255  # x = 10, y = 5 from the centre
        context = HoughRectangle(img, theta_bins=181, rho_bins=57)
        acc = context.hough_transform(img)

        assert np.all(np.sum(acc, axis=0) == 1)
        for theta_idx in [0, 30, 90, 135, 180]:
            theta = np.radians(context.thetas[theta_idx])
            rho = 10 * np.cos(theta) + 5 * np.sin(theta)
            expected_rho_idx = np.argmin(np.abs(context.rho_axis - rho))
            assert acc[expected_rho_idx, theta_idx] == 1

    def test_corner_pixels_stay_in_range(self):
        img = np.zeros((12, 17))
        img[0, 0] = img[0, -1] = img[-1, 0] = img[-1, -1] = 255
        context = HoughRectangle(img, theta_bins=64, rho_bins=33)
        acc = context.hough_transform(img)
        assert np.sum(acc) == 4 * 64
        # At 45 degrees the diagonal corners reach the ends of the radius axis.
        assert np.sum(acc[0, :]) > 0
        assert np.sum(acc[-1, :]) > 0

    def test_single_radius_bin(self):
        img = random_edge_image((10, 10))
        context = HoughRectangle(img, theta_bins=8, rho_bins=1)
        acc = context.hough_transform(img)
        assert acc.shape == (1, 8)
        assert np.all(acc == np.count_nonzero(img))

    def test_line_segment_gives_single_peak(self):
        img = np.zeros((101, 101))
        img[20:81, 70] = 255  # vertical segment of 61 pixels at x = 20
        context = HoughRectangle(img, theta_bins=181, rho_bins=142)
        acc = context.hough_transform(img)

        peaks = process_image.find_local_maximum(acc, 60.5)
        assert len(peaks) == 1
        ((rho, theta),) = context.index_rho_theta(peaks)
        rho_step = context.rho_axis[1] - context.rho_axis[0]
        assert abs(rho - 20) <= rho_step
        assert abs(theta - 0) <= context.thetas[1] - context.thetas[0]


class TestEnhanceHough:
    def test_zero_accumulator_stays_zero(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        enhanced = context.enhance_hough(np.zeros((11, 19)), 5, 5)
        assert not np.any(enhanced)

    def test_isolated_peak_is_amplified(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        acc = np.zeros((11, 19))
        acc[5, 9] = 10.0
        enhanced = context.enhance_hough(acc, 5, 5)
        # 21 cells of a radius 2.5 disk share the single vote mass.
        assert abs(enhanced[5, 9] - 21 * 10.0) < eps
        # Cells without votes of their own stay at zero.
        assert enhanced[5, 10] == 0
        assert np.count_nonzero(enhanced) == 1

    def test_uniform_accumulator_is_unchanged_inside(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        acc = np.full((11, 19), 3.0)
        enhanced = context.enhance_hough(acc, 3, 3)
        assert np.allclose(enhanced[1:-1, 1:-1], 3.0)

    @pytest.mark.parametrize("h, w", [(1, 1), (7, 3), (3, 9), (15, 25)])
    def test_neighbourhood_size_keeps_accumulator_shape(self, h, w):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        acc = np.arange(11 * 19, dtype=float).reshape(11, 19)
        assert context.enhance_hough(acc, h, w).shape == (11, 19)

    def test_single_cell_neighbourhood_is_identity(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        acc = np.arange(11 * 19, dtype=float).reshape(11, 19)
        assert np.allclose(context.enhance_hough(acc, 1, 1), acc)

    def test_does_not_modify_input(self):
        context = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        acc = np.arange(11 * 19, dtype=float).reshape(11, 19)
        original = acc.copy()
        context.enhance_hough(acc, 3, 3)
        assert np.array_equal(acc, original)

    def test_angle_axis_wraps_with_mirrored_radius(self):
        acc = np.zeros((11, 19))
        acc[3, 0] = 10.0
        # One bin before -90 degrees is one bin before +90 degrees, mirrored.
        acc[7, 17] = 10.0

        wrapping = HoughRectangle(np.zeros((10, 10)), theta_bins=19, rho_bins=11)
        assert wrapping.theta_wraps
        assert abs(wrapping.enhance_hough(acc, 3, 3)[3, 0] - 9 * 100.0 / 20.0) < eps

        not_wrapping = HoughRectangle(
            np.zeros((10, 10)), theta_bins=19, rho_bins=11, theta_min=-45, theta_max=45
        )
        assert not not_wrapping.theta_wraps
        assert abs(not_wrapping.enhance_hough(acc, 3, 3)[3, 0] - 9 * 100.0 / 10.0) < eps

    def test_invalid_neighbourhood(self):
        context = HoughRectangle(np.zeros((10, 10)))
        with pytest.raises(InvalidConfigurationError):
            context.enhance_hough(np.zeros((256, 256)), 0, 3)


class TestWindowedHough:
    def test_windowed_hough_ignores_pixels_outside_ring(self):
        img = np.zeros((21, 21))
        img[0, 0] = 255  # corner, distance 14.1 from the centre
        context = HoughRectangle(img, theta_bins=30, rho_bins=30)
        assert not np.any(context.windowed_hough(img, 0, 10))
        assert np.sum(context.windowed_hough(img, 0, 15)) == 30

    @pytest.mark.parametrize("window", [1, 7, 20, 64])
    def test_tiles_are_independent(self, window):
        img = random_edge_image((50, 45), seed=window)
        context = HoughRectangle(img, theta_bins=32, rho_bins=32)
        r_min, r_max = 2, 8
        response = context.apply_windowed_hough(img, window, r_min, r_max)
        assert response.shape == img.shape

        for top in range(0, 50, window):
            for left in range(0, 45, window):
                tile = img[top : top + window, left : left + window]
                height, width = tile.shape
                tile_context = HoughRectangle(tile, theta_bins=width, rho_bins=height)
                expected = tile_context.windowed_hough(tile, r_min, r_max)
                actual = response[top : top + height, left : left + width]
                assert np.array_equal(actual, expected)

    def test_invalid_window(self):
        context = HoughRectangle(np.zeros((10, 10)))
        with pytest.raises(InvalidConfigurationError):
            context.apply_windowed_hough(np.zeros((10, 10)), 0, 0, 5)


class TestIndexRhoTheta:
    def test_lookup(self):
        context = HoughRectangle(np.zeros((41, 41)), theta_bins=181, rho_bins=57)
        decoded = context.index_rho_theta(np.array([[0, 0], [28, 90], [56, 180]]))
        rho_limit = np.hypot(40, 40) / 2
        assert np.allclose(decoded[:, 0], [-rho_limit, 0, rho_limit])
        assert np.allclose(decoded[:, 1], [-90, 0, 90])

    def test_other_image_shape(self):
        context = HoughRectangle(np.zeros((41, 41)), theta_bins=181, rho_bins=57)
        decoded = context.index_rho_theta(np.array([[56, 0]]), shape=(11, 11))
        assert abs(decoded[0, 0] - np.hypot(10, 10) / 2) < eps

    def test_out_of_range_indexes_are_clamped(self):
        context = HoughRectangle(np.zeros((41, 41)), theta_bins=181, rho_bins=57)
        decoded = context.index_rho_theta(np.array([[99, -4]]))
        assert decoded[0, 0] == context.rho_axis[-1]
        assert decoded[0, 1] == -90
