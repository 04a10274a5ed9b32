import fcntl
import importlib
import os
import shutil
import subprocess
import tempfile
import unittest
from unittest.mock import patch
from ffdroid import pipeline
from ffdroid.builders.fftools import Linked
from ffdroid.config import BuildPaths, resolve_build_config
from ffdroid.errors import BuildError, VerificationError
from ffdroid.pipeline import AbiBuildDriver, AbiStage
from ffdroid.stager import Stager
from ffdroid.verifier import VerificationReport

ffmpeg_builder = importlib.import_module("ffdroid.builders.ffmpeg")


def _touch(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


def fake_build_dav1d(toolchain, paths, build_config, verbose=False):
    prefix = paths.dav1d_prefix(toolchain.abi)
    _touch(os.path.join(prefix, "lib", "libdav1d.so"), "dav1d")
    return prefix


def fake_build_ffmpeg(toolchain, paths, build_config, dav1d_prefix, verbose=False):
    prefix = paths.build_dir(toolchain.abi)
    for name in ("libavcodec.so", "libavutil.so", "libavcodec.a"):
        _touch(os.path.join(prefix, "lib", name), name)
    _touch(os.path.join(prefix, "lib", "pkgconfig", "libavcodec.pc"))
    _touch(os.path.join(prefix, "include", "libavutil", "avconfig.h"), "#define AV_HAVE_BIGENDIAN 0\n")
    _touch(os.path.join(paths.ffmpeg_dir, "config.h"), "#define CONFIG_LIBDAV1D 1\n")
    return prefix


def fake_build_fftools(toolchain, paths, verbose=False):
    output = os.path.join(paths.build_dir(toolchain.abi), "lib", "libfftools.so")
    _touch(output, "fftools")
    return Linked(output, "shared")


def fake_verify(artifacts, toolchain):
    return VerificationReport(abi=artifacts.abi, accepted=True)


@patch("ffdroid.pipeline.verifier.verify_artifacts", side_effect=fake_verify)
@patch("ffdroid.pipeline.builders.build_fftools", side_effect=fake_build_fftools)
@patch("ffdroid.pipeline.builders.build_ffmpeg", side_effect=fake_build_ffmpeg)
@patch("ffdroid.pipeline.builders.build_dav1d", side_effect=fake_build_dav1d)
class TestAbiBuildDriver(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.paths = BuildPaths(self.test_dir, "r27")
        self.build_config = resolve_build_config(flags={"abis": ["arm64-v8a"]}, environ={})
        self.stager = Stager(self.paths.output_dir)
        self.stager.reset()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _driver(self, abi="arm64-v8a"):
        return AbiBuildDriver(abi, self.build_config, self.paths, self.paths.ndk_dir, self.stager)

    def test_stages_run_in_order(self, mock_dav1d, mock_ffmpeg, mock_fftools, mock_verify):
        driver = self._driver()
        driver.run()

        self.assertEqual(driver.stage, AbiStage.STAGED)
        self.assertEqual([r.stage for r in driver.history], pipeline.STAGE_ORDER[1:])
        self.assertTrue(all(r.ok for r in driver.history))
        self.assertEqual(driver.toolchain.abi, "arm64-v8a")

    def test_failure_stops_the_abi(self, mock_dav1d, mock_ffmpeg, mock_fftools, mock_verify):
        mock_ffmpeg.side_effect = BuildError("FFmpeg make failed", log_paths=["/logs/ffmpeg-make.log"])
        driver = self._driver()

        with self.assertRaises(BuildError) as ctx:
            driver.run()

        self.assertEqual(ctx.exception.abi, "arm64-v8a")
        self.assertEqual(driver.stage, AbiStage.DEPENDENCY_BUILT)
        self.assertFalse(driver.history[-1].ok)
        self.assertEqual(driver.history[-1].stage, AbiStage.PRIMARY_BUILT)
        mock_fftools.assert_not_called()
        mock_verify.assert_not_called()
        self.assertFalse(os.path.exists(self.stager.abi_dir("arm64-v8a")))

    def test_rejected_verification_is_never_staged(self, mock_dav1d, mock_ffmpeg, mock_fftools, mock_verify):
        mock_verify.side_effect = VerificationError("1 problem(s) found", problems=["iconv"])
        driver = self._driver()

        with self.assertRaises(VerificationError):
            driver.run()

        self.assertEqual(driver.stage, AbiStage.VERSION_STAMPED)
        self.assertFalse(os.path.exists(self.stager.abi_dir("arm64-v8a")))

    def test_stages_cannot_be_skipped(self, mock_dav1d, mock_ffmpeg, mock_fftools, mock_verify):
        driver = self._driver()
        with self.assertRaises(BuildError):
            driver.advance(AbiStage.VERIFIED, lambda: None)
        self.assertEqual(driver.stage, AbiStage.PROVISIONED)
        self.assertEqual(driver.history, [])

    def test_missing_config_header(self, mock_dav1d, mock_ffmpeg, mock_fftools, mock_verify):
        def build_without_config(toolchain, paths, build_config, dav1d_prefix, verbose=False):
            prefix = fake_build_ffmpeg(toolchain, paths, build_config, dav1d_prefix)
            os.remove(os.path.join(paths.ffmpeg_dir, "config.h"))
            return prefix

        mock_ffmpeg.side_effect = build_without_config
        driver = self._driver()
        with self.assertRaises(BuildError):
            driver.run()
        self.assertEqual(driver.stage, AbiStage.SECONDARY_BUILT)


@patch("ffdroid.pipeline.verifier.verify_artifacts", side_effect=fake_verify)
@patch("ffdroid.pipeline.builders.build_fftools", side_effect=fake_build_fftools)
@patch("ffdroid.pipeline.builders.build_ffmpeg", side_effect=fake_build_ffmpeg)
@patch("ffdroid.pipeline.builders.build_dav1d", side_effect=fake_build_dav1d)
@patch("ffdroid.pipeline.provisioner.provision")
class TestRunPipeline(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.paths = BuildPaths(self.test_dir, "r27")
        os.makedirs(self.paths.ffmpeg_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_single_abi_end_to_end(self, mock_provision, *mocks):
        mock_provision.return_value = self.paths.ndk_dir
        build_config = resolve_build_config(
            flags={"abis": ["arm64-v8a"], "internal_version": "1.0.0"}, environ={}
        )

        drivers = pipeline.run_pipeline(build_config, work_dir=self.test_dir)

        self.assertEqual([d.abi for d in drivers], ["arm64-v8a"])
        abi_dir = os.path.join(self.paths.output_dir, "arm64-v8a")
        self.assertEqual(
            sorted(os.listdir(os.path.join(abi_dir, "lib"))),
            ["libavcodec.so", "libavutil.so", "libdav1d.so", "libfftools.so"],
        )
        with open(os.path.join(abi_dir, "as-ffmpeg-version")) as f:
            self.assertEqual(f.read(), "1.0.0\n")
        with open(os.path.join(self.paths.output_dir, "as-ffmpeg-version")) as f:
            self.assertEqual(f.read(), "1.0.0\n")
        self.assertTrue(os.path.exists(os.path.join(self.paths.output_dir, "include", "libfftools", "ffmpeg.h")))
        self.assertTrue(os.path.exists(os.path.join(self.paths.output_dir, "include", "libavutil", "avconfig.h")))

    def test_abis_build_in_order(self, mock_provision, mock_dav1d, *mocks):
        mock_provision.return_value = self.paths.ndk_dir
        build_config = resolve_build_config(flags={"abis": ["x86_64", "arm64-v8a"]}, environ={})

        pipeline.run_pipeline(build_config, work_dir=self.test_dir)

        self.assertEqual([c[0][0].abi for c in mock_dav1d.call_args_list], ["x86_64", "arm64-v8a"])
        self.assertEqual(sorted(os.listdir(self.paths.output_dir)),
                         ["arm64-v8a", "as-ffmpeg-version", "include", "x86_64"])

    def test_first_failure_aborts_remaining_abis(self, mock_provision, mock_dav1d, mock_ffmpeg, *mocks):
        mock_provision.return_value = self.paths.ndk_dir
        config_log = os.path.join(self.paths.ffmpeg_dir, "ffbuild", "config.log")
        _touch(config_log, "ERROR: dav1d >= 0.5.0 not found using pkg-config\n")
        mock_ffmpeg.side_effect = BuildError("FFmpeg configure failed", log_paths=["/logs/ffmpeg-configure.log"])
        build_config = resolve_build_config(flags={"abis": ["arm64-v8a", "x86_64"]}, environ={})

        with self.assertRaises(BuildError) as ctx:
            pipeline.run_pipeline(build_config, work_dir=self.test_dir)

        self.assertEqual(ctx.exception.abi, "arm64-v8a")
        self.assertEqual(ctx.exception.log_paths, ("/logs/ffmpeg-configure.log", config_log))
        mock_dav1d.assert_called_once()
        self.assertEqual(os.listdir(self.paths.output_dir), [])

    def test_previous_output_is_cleared(self, mock_provision, *mocks):
        mock_provision.return_value = self.paths.ndk_dir
        stale = os.path.join(self.paths.output_dir, "armeabi-v7a", "lib", "libavcodec.so")
        _touch(stale)
        build_config = resolve_build_config(flags={"abis": ["x86_64"]}, environ={})

        pipeline.run_pipeline(build_config, work_dir=self.test_dir)

        self.assertFalse(os.path.exists(stale))


class TestCheckoutLock(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.paths = BuildPaths(self.test_dir, "r27")
        os.makedirs(self.paths.ffmpeg_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_lock_file_lives_outside_the_checkout(self):
        lock_dir = os.path.dirname(self.paths.ffmpeg_lock_file)
        self.assertEqual(lock_dir, self.test_dir)
        self.assertFalse(self.paths.ffmpeg_lock_file.startswith(self.paths.ffmpeg_dir + os.sep))

    def test_lock_is_released_after_use(self):
        with pipeline.checkout_lock(self.paths.ffmpeg_lock_file, self.paths.ffmpeg_dir) as lock_path:
            self.assertTrue(os.path.exists(lock_path))
        with pipeline.checkout_lock(self.paths.ffmpeg_lock_file, self.paths.ffmpeg_dir):
            pass

    @unittest.skipUnless(shutil.which("git"), "git is not installed")
    def test_lock_survives_cleaning_the_checkout(self):
        subprocess.run(["git", "init", "-q", self.paths.ffmpeg_dir], check=True)
        _touch(os.path.join(self.paths.ffmpeg_dir, "ffbuild", "config.log"), "stale\n")

        with pipeline.checkout_lock(self.paths.ffmpeg_lock_file, self.paths.ffmpeg_dir) as lock_path:
            ffmpeg_builder.clean_ffmpeg(self.paths.ffmpeg_dir)
            self.assertTrue(os.path.exists(lock_path))
            self.assertFalse(os.path.exists(os.path.join(self.paths.ffmpeg_dir, "ffbuild")))

            with open(lock_path) as other:
                with self.assertRaises(BlockingIOError):
                    fcntl.flock(other, fcntl.LOCK_EX | fcntl.LOCK_NB)

if __name__ == "__main__":
    unittest.main()
