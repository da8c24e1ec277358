# psfguard

A library for judging the quality of astronomical frames captured by an
imaging scheduler. It reads and updates the scheduler's SQLite database,
grades images statistically from their HFR and star counts, loads FITS images
and computes their pixel statistics, applies a midtone transfer function (MTF)
auto-stretch, and performs morphology on 8-bit images.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `psfguard.models`

Dataclasses `Project`, `Target` and `AcquiredImage`, each with `to_dict()`
and a `from_dict(data)` class method. `from_dict` raises `ValueError` when a
required field is missing. `GradingStatus` is an integer enumeration with
members `PENDING` (0), `ACCEPTED` (1) and `REJECTED` (2).
`status_name(value)` turns a stored status code into `"Pending"`,
`"Accepted"`, `"Rejected"` or, for any other code, `"Unknown"`.

### `psfguard.db`

`Database(conn)` wraps an open `sqlite3.Connection` to a database that already
holds the scheduler's `project`, `target` and `acquiredimage` tables. It
offers:

- `get_all_projects()`: every project, ordered by name.
- `find_project_id_by_name(name)`: the id of the project with exactly that
  name; raises `ProjectNotFoundError` (a `LookupError`) if there is none.
- `get_targets_with_stats(project_id)`: each target of a project, ordered by
  name, with its image, accepted and rejected counts.
- `query_images(status_filter, project_filter, target_filter, date_cutoff)`:
  images with their project and target names, newest first. Project and
  target filters match substrings.
- `get_images_by_ids(ids)`.
- `update_grading_status(image_id, status, reject_reason)` and
  `batch_update_grading_status(updates)`. The batch form applies all updates
  in one transaction.
- `reset_grading_status(mode, date_cutoff, project_filter, target_filter)`:
  sets matching images back to pending and returns the number of rows
  changed. In `"automatic"` mode, manual rejections are kept.
- `count_images_to_reset(...)`: takes the same arguments and counts the graded
  images that such a reset would affect.
- `transaction()`: a context manager that commits when the block succeeds and
  rolls back when it raises.

### `psfguard.grading_stats` and `psfguard.grading`

`parse_image_metadata(image_id, target_id, target_name, metadata_json,
filter_name, original_status)` builds an `ImageStatistics` record from an
image's JSON metadata. The metadata must contain `FileName`, `FilterName`
and `ExposureStartTime`. `HFR` and `DetectedStars` are optional. Malformed
JSON or a missing field raises `ValueError`.

`StatisticalGradingConfig` holds the switches and thresholds. The defaults
are:

- outlier thresholds for HFR and star count: 2σ
- median-shift threshold: 10 %
- cloud threshold: 20 %
- cloud baseline: 5 images

`FilterStatistics.from_images(images)`, `median(values)` and
`sample_stddev(values, mean)` provide the underlying statistics.

`StatisticalGrader(config).analyze_images(images)` groups the images by
target and filter. Within a group it orders them by exposure time and returns
a list of `StatisticalRejection` entries (`image_id`, `reason`, `details`).
It looks for:

- HFR and star-count z-score outliers
- MAD-based outliers when the distribution is skewed
- cloud events, seen as sudden HFR rises against a rolling baseline, or, when
  there are none, as sudden drops in star count

Groups of fewer than three images are skipped.

### `psfguard.image_analysis`

`FitsImage.from_file(path)` loads the primary image of a FITS file. It accepts
16- and 32-bit integer data and 32- and 64-bit float data, applies `BSCALE`,
`BZERO` and `BLANK`, and rescales the pixels linearly to 0..65535. A file
that is not a usable 2-D image raises `ValueError`.

`calculate_statistics()` returns an `ImageStatistics` with the width and
height, the mean, the median, the population standard deviation, the minimum
and maximum, and the median absolute deviation (MAD) found from a histogram.
`calculate_basic_statistics()` and `calculate_statistics_with_mad()` give the
same figures.

### `psfguard.mtf_stretch`

`stretch_image(data, statistics, factor, black_clipping)` and
`stretch_image_with_bit_depth(...)` stretch 16-bit pixels so that the image
median lands near `factor` of full scale. They return a new `uint16` array.
The helpers `midtones_transfer_function`, `normalize_u16` and
`denormalize_u16` are public. `StretchParameters` holds the defaults:
factor 0.2 and black clipping -2.8.

### `psfguard.morphology`

`Morphology(kernel_size, kernel_type)` provides dilation, erosion, opening,
closing and hot-pixel filtering on flat 8-bit images. The structuring element
can be rectangular, elliptical or a cross (`MorphKernelType`). The shortcuts
`Morphology.new_ellipse(size)` and `Morphology.new_rectangle(size)` create
the first two. Borders are mirrored. Each operation returns a new flat array
and leaves its input unchanged.

### `psfguard.debug`

`init_debug(verbose)` and `is_debug_enabled()` control a process-wide debug
switch. While the switch is on, `debug_print`, `debug_mtf`,
`debug_detection` and `debug_blob` write prefixed messages to standard error.
`info_print` always writes to standard output.

## Example

```python
from psfguard.grading import StatisticalGrader
from psfguard.grading_stats import StatisticalGradingConfig, parse_image_metadata

images = [
    parse_image_metadata(1, 1, "M31", metadata_json, "Ha", 0)
    for metadata_json in rows
]
for rejection in StatisticalGrader(StatisticalGradingConfig()).analyze_images(images):
    print(rejection.image_id, rejection.reason, rejection.details)
```

Here `rows` stands for your own sequence of metadata JSON strings.

## What this package does not do

- It is a library only. It installs no command-line program.
- It does not detect stars, measure HFR or fit PSFs in images. The HFR and
  star counts it grades come from each image's stored metadata.
- It does not write image files. A stretched image comes back as an array,
  and saving it is up to you.
- It does not create the scheduler's database schema. It works on an existing
  database.